"""Blob store on the local filesystem.

Layout: ``root/<aa>/<bb>/<sha256>``. Incoming bytes are staged under
``root/.staging`` while they are hashed, then moved into place with
``os.replace``; a reader never sees a partially written blob. Placed blobs
are made read-only, since a blob whose bytes change no longer matches its key.
"""

import hashlib
import os
import stat
import tempfile
from pathlib import Path
from typing import BinaryIO

from buildline.interfaces.filestore import BlobStats, DigestMismatch, FileStore, PathLike

SHA256_LENGTH = 64
CHUNK_SIZE = 1024 * 1024
STAGING_DIR = ".staging"
READ_ONLY = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH


def validate_key(sha256: str) -> None:
    """Raise ValueError unless ``sha256`` is 64 hex characters."""
    if len(sha256) != SHA256_LENGTH:
        raise ValueError(f"Invalid blob key {sha256!r}: expected {SHA256_LENGTH} characters")
    if any(c not in "0123456789abcdefABCDEF" for c in sha256):
        raise ValueError(f"Invalid blob key {sha256!r}: not hexadecimal")


class LocalFileStore(FileStore):
    """Sharded blob directory (the user cache, or ``build/repository/blobs``)."""

    def __init__(self, root: PathLike) -> None:
        self._root = Path(root)
        self._staging = self._root / STAGING_DIR
        self._staging.mkdir(parents=True, exist_ok=True)

    def store(self, fileobj: BinaryIO, expected_sha256: str | None = None) -> BlobStats:
        if expected_sha256 is not None:
            validate_key(expected_sha256)
        hasher = hashlib.sha256()
        size = 0
        with tempfile.NamedTemporaryFile(dir=self._staging, delete=False) as staged:
            staged_path = Path(staged.name)
            while chunk := fileobj.read(CHUNK_SIZE):
                hasher.update(chunk)
                staged.write(chunk)
                size += len(chunk)

        sha256 = hasher.hexdigest()
        if expected_sha256 is not None and sha256 != expected_sha256.lower():
            staged_path.unlink()
            raise DigestMismatch(expected_sha256, sha256)

        dest = self.path_for(sha256)
        if dest.is_file():
            staged_path.unlink()
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            staged_path.chmod(READ_ONLY)
            os.replace(staged_path, dest)
        return BlobStats(size_bytes=size, sha256=sha256)

    def open_read(self, sha256: str) -> BinaryIO:
        try:
            return self.path_for(sha256).open("rb")
        except FileNotFoundError:
            raise FileNotFoundError(f"Blob {sha256!r} not found") from None

    def exists(self, sha256: str) -> bool:
        return self.path_for(sha256).is_file()

    def size(self, sha256: str) -> int:
        try:
            return self.path_for(sha256).stat().st_size
        except FileNotFoundError:
            raise FileNotFoundError(f"Blob {sha256!r} not found") from None

    def path_for(self, sha256: str) -> Path:
        """Where the blob ``sha256`` lives (whether or not it is stored yet)."""
        validate_key(sha256)
        key = sha256.lower()
        return self._root / key[:2] / key[2:4] / key
