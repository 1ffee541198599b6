"""Artifact repository interface.

The artifact repository holds the library archives modules publish in their
assemble stage. Downstream modules resolve project dependencies against it.
"""

import abc
from dataclasses import dataclass
from pathlib import Path


class ArtifactNotFound(LookupError):
    """No archive was published for the requested coordinate."""

    def __init__(self, coordinate: str) -> None:
        super().__init__(f"No artifact published for {coordinate}")
        self.coordinate = coordinate


@dataclass(frozen=True)
class ArtifactRecord:
    """A published library archive."""

    group: str
    name: str
    version: str
    sha256: str
    size_bytes: int
    filename: str

    @property
    def coordinate(self) -> str:
        return f"{self.group}:{self.name}:{self.version}"


class ArtifactRepository(abc.ABC):
    """Contract for publishing and locating library archives."""

    @abc.abstractmethod
    def publish(self, group: str, name: str, version: str, archive: Path) -> ArtifactRecord:
        """Publish ``archive`` under ``group:name:version``, replacing any previous one."""

    @abc.abstractmethod
    def locate(self, group: str, name: str, version: str) -> ArtifactRecord:
        """Return the record for a coordinate.

        Raises:
            ArtifactNotFound: If nothing was published under that coordinate.
        """

    @abc.abstractmethod
    def materialize(self, record: ArtifactRecord, dest_dir: Path) -> Path:
        """Copy the archive of ``record`` into ``dest_dir`` and return its path."""
