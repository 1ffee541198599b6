"""Contract tests for the CAS filestore.

Every backend must:
- key blobs by the SHA-256 of their content,
- deduplicate identical content,
- read back exactly what was stored,
- report missing blobs with `FileNotFoundError`,
- refuse bytes that do not match the digest a writer expects.
"""

from __future__ import annotations

import hashlib
import io
from concurrent.futures import ThreadPoolExecutor

import pytest

from buildline.interfaces.filestore import DigestMismatch, FileStore

MISSING = "0" * 64


class TestStore:
    """`store` and `store_bytes`."""

    @staticmethod
    def test_returns_sha256_and_size(store: FileStore, arbitrary_bytes: bytes):
        """Stats carry the content digest and byte count."""
        stats = store.store_bytes(arbitrary_bytes)

        assert stats.sha256 == hashlib.sha256(arbitrary_bytes).hexdigest()
        assert stats.size_bytes == len(arbitrary_bytes)

    @staticmethod
    def test_reads_from_current_position(store: FileStore):
        """Only the bytes after the stream position are stored."""
        stream = io.BytesIO(b"headerPAYLOAD")
        stream.seek(len(b"header"))

        stats = store.store(stream)

        assert store.read_bytes(stats.sha256) == b"PAYLOAD"

    @staticmethod
    def test_identical_content_is_deduplicated(store: FileStore, arbitrary_bytes: bytes):
        """Storing the same bytes twice yields the same key."""
        first = store.store_bytes(arbitrary_bytes)
        second = store.store_bytes(arbitrary_bytes)

        assert first == second

    @staticmethod
    def test_empty_blob(store: FileStore):
        """The empty blob is a valid blob."""
        stats = store.store_bytes(b"")

        assert stats.size_bytes == 0
        assert store.exists(stats.sha256)
        assert store.read_bytes(stats.sha256) == b""

    @staticmethod
    def test_concurrent_stores_of_same_content(store: FileStore):
        """Parallel publishers of identical archives end up with one readable blob."""
        payload = b"archive" * 1000

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: store.store_bytes(payload), range(16)))

        assert len({r.sha256 for r in results}) == 1
        assert store.read_bytes(results[0].sha256) == payload


class TestRead:
    """`open_read`, `read_bytes` and `exists`."""

    @staticmethod
    def test_round_trip(store: FileStore, arbitrary_bytes: bytes):
        """What goes in comes out."""
        stats = store.store_bytes(arbitrary_bytes)

        with store.open_read(stats.sha256) as f:
            assert f.read() == arbitrary_bytes

    @staticmethod
    def test_exists(store: FileStore, arbitrary_bytes: bytes):
        """`exists` flips once the blob is stored."""
        key = hashlib.sha256(arbitrary_bytes).hexdigest()
        assert not store.exists(key)

        store.store_bytes(arbitrary_bytes)

        assert store.exists(key)

    @staticmethod
    def test_missing_blob_raises(store: FileStore):
        """Unknown keys raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            store.open_read(MISSING)
        with pytest.raises(FileNotFoundError):
            store.read_bytes(MISSING)


class TestExpectedDigest:
    """Writers that know the digest up front (registry downloads)."""

    @staticmethod
    def test_matching_digest_is_accepted(store: FileStore, arbitrary_bytes: bytes):
        expected = hashlib.sha256(arbitrary_bytes).hexdigest()
        stats = store.store_bytes(arbitrary_bytes, expected_sha256=expected)
        assert stats.sha256 == expected

    @staticmethod
    def test_mismatch_stores_nothing(store: FileStore, arbitrary_bytes: bytes):
        expected = hashlib.sha256(b"something else").hexdigest()
        with pytest.raises(DigestMismatch) as excinfo:
            store.store_bytes(arbitrary_bytes, expected_sha256=expected)

        assert excinfo.value.expected == expected
        assert not store.exists(hashlib.sha256(arbitrary_bytes).hexdigest())


class TestSize:
    """`size` reports stored byte counts."""

    @staticmethod
    def test_size(store: FileStore, arbitrary_bytes: bytes):
        stats = store.store_bytes(arbitrary_bytes)
        assert store.size(stats.sha256) == len(arbitrary_bytes)

    @staticmethod
    def test_size_of_missing_blob(store: FileStore):
        with pytest.raises(FileNotFoundError):
            store.size(MISSING)
