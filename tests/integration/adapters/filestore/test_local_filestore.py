"""Integration tests for the LocalFileStore adapter.

The store also passes the contract tests in `tests/contract/filestore/`; these
cover what is specific to the filesystem: sharding, staging, read-only blobs
and key validation.
"""

import hashlib
import io
import os
import stat
from pathlib import Path

import pytest

from buildline.adapters.filestore.local import CHUNK_SIZE, STAGING_DIR, LocalFileStore
from buildline.interfaces.filestore import DigestMismatch


def test_creates_root_and_staging(tmp_path: Path):
    root = tmp_path / "cache" / "blobs"
    LocalFileStore(root)
    assert (root / STAGING_DIR).is_dir()


def test_blobs_are_sharded(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    stats = store.store(io.BytesIO(b"layer"))

    sha = stats.sha256
    expected = tmp_path / sha[:2] / sha[2:4] / sha
    assert store.path_for(sha) == expected
    assert expected.read_bytes() == b"layer"


def test_blobs_are_read_only(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    stats = store.store_bytes(b"archive")
    mode = stat.S_IMODE(store.path_for(stats.sha256).stat().st_mode)
    assert not mode & (stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH)


def test_staging_is_emptied(tmp_path: Path):
    """Nothing is left behind: not after a duplicate, not after a mismatch."""
    store = LocalFileStore(tmp_path)
    store.store_bytes(b"same")
    store.store_bytes(b"same")
    with pytest.raises(DigestMismatch):
        store.store_bytes(b"other", expected_sha256=hashlib.sha256(b"same").hexdigest())

    assert not os.listdir(tmp_path / STAGING_DIR)


def test_upper_case_keys_address_the_same_blob(tmp_path: Path):
    store = LocalFileStore(tmp_path)
    stats = store.store_bytes(b"data")
    assert store.exists(stats.sha256.upper())


@pytest.mark.parametrize("key", ["", "abc", "g" * 64, "../" + "a" * 61, "a" * 65])
def test_invalid_keys_are_rejected(tmp_path: Path, key: str):
    store = LocalFileStore(tmp_path)
    with pytest.raises(ValueError, match="Invalid blob key"):
        store.exists(key)


def test_reads_in_bounded_chunks(tmp_path: Path):
    """Large archives are never read into memory in one call."""

    class LoggingStream(io.BytesIO):
        """BytesIO that records the size of each read."""

        def __init__(self, data: bytes):
            super().__init__(data)
            self.calls: list[int | None] = []

        def read(self, size: int | None = -1) -> bytes:
            self.calls.append(size)
            return super().read(size)

    data = b"x" * (2 * CHUNK_SIZE + 10)
    stream = LoggingStream(data)

    stats = LocalFileStore(tmp_path).store(stream)

    assert stats.size_bytes == len(data)
    assert set(stream.calls) == {CHUNK_SIZE}
