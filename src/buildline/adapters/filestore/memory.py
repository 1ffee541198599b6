"""In-memory blob store.

Blobs live in a dict keyed by SHA-256 and are lost when the process exits.
Used by tests and dry runs. Lookups and inserts happen under a lock, so
concurrent writers of identical bytes end up with one entry.
"""

from __future__ import annotations

import hashlib
import io
import threading
from typing import BinaryIO

from buildline.interfaces.filestore import BlobStats, DigestMismatch, FileStore

__all__ = ["MemoryFileStore"]


class MemoryFileStore(FileStore):
    """Dict-backed `FileStore`."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.RLock()

    def store(self, fileobj: BinaryIO, expected_sha256: str | None = None) -> BlobStats:
        data = fileobj.read()
        sha256 = hashlib.sha256(data).hexdigest()
        if expected_sha256 is not None and sha256 != expected_sha256.lower():
            raise DigestMismatch(expected_sha256, sha256)
        with self._lock:
            self._blobs.setdefault(sha256, data)
        return BlobStats(size_bytes=len(data), sha256=sha256)

    def open_read(self, sha256: str) -> BinaryIO:
        return io.BytesIO(self._get(sha256))

    def exists(self, sha256: str) -> bool:
        with self._lock:
            return sha256 in self._blobs

    def size(self, sha256: str) -> int:
        return len(self._get(sha256))

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)

    def _get(self, sha256: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[sha256]
            except KeyError:
                raise FileNotFoundError(f"Blob {sha256!r} not found") from None
