"""Content-addressed blob storage.

Blobs are immutable and keyed by the hex SHA-256 of their bytes. Two stores
exist in a build: the project's artifact repository keeps library archives
in one, and the user cache keeps base-image manifests and layers in another.
Writers that already know the digest they expect (registry downloads) pass
it along, and the store refuses bytes that do not match.
"""

import abc
import io
import os
from dataclasses import dataclass
from typing import BinaryIO

PathLike = str | os.PathLike[str]


class DigestMismatch(ValueError):
    """Stored bytes do not hash to the digest the writer expected."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"digest mismatch: expected sha256:{expected}, got sha256:{actual}")
        self.expected = expected
        self.actual = actual


@dataclass
class BlobStats:
    """Size and key of a stored blob."""

    size_bytes: int
    sha256: str


class FileStore(abc.ABC):
    """A content-addressed store of immutable blobs."""

    @abc.abstractmethod
    def store(self, fileobj: BinaryIO, expected_sha256: str | None = None) -> BlobStats:
        """Copy ``fileobj`` from its current position to EOF into the store.

        Storing bytes that are already present is a no-op returning the same
        stats, so concurrent writers of one archive agree on a single blob.

        Args:
            fileobj: Binary stream to read.
            expected_sha256: Hex digest the bytes must have, when known.

        Raises:
            DigestMismatch: If ``expected_sha256`` is given and differs. Nothing
                is stored in that case.
        """

    @abc.abstractmethod
    def open_read(self, sha256: str) -> BinaryIO:
        """Open a blob for reading; the caller closes the stream.

        Raises:
            FileNotFoundError: If the blob is not in the store.
            ValueError: If ``sha256`` is not a valid key.
        """

    @abc.abstractmethod
    def exists(self, sha256: str) -> bool:
        """Return True if the blob is in the store."""

    @abc.abstractmethod
    def size(self, sha256: str) -> int:
        """Size of a stored blob in bytes.

        Raises:
            FileNotFoundError: If the blob is not in the store.
        """

    def store_bytes(self, data: bytes, expected_sha256: str | None = None) -> BlobStats:
        return self.store(io.BytesIO(data), expected_sha256)

    def read_bytes(self, sha256: str) -> bytes:
        with self.open_read(sha256) as f:
            return f.read()
