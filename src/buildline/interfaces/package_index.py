"""Package index interface.

A package index answers one question: which versions of a distribution does a
repository offer? Resolution uses it to verify pinned versions and the
freshness report uses it to find the latest release.
"""

import abc


class PackageIndexError(Exception):
    """Base class for package-index failures."""


class DistributionNotFound(PackageIndexError):
    """The repository does not know the requested distribution."""

    def __init__(self, repository: str, name: str) -> None:
        super().__init__(f"{name!r} not found in {repository}")
        self.repository = repository
        self.name = name


class IndexUnavailable(PackageIndexError):
    """The repository could not be queried (network, offline cache miss...)."""


class PackageIndex(abc.ABC):
    """Contract for querying a package repository."""

    @abc.abstractmethod
    def versions(self, repository: str, name: str) -> list[str]:
        """Return every version of ``name`` offered by ``repository``.

        Args:
            repository: Base URL of a PEP 691 simple index.
            name: Distribution name (any normalization).

        Returns:
            The versions in repository order (not sorted).

        Raises:
            DistributionNotFound: If the repository has no such distribution.
            IndexUnavailable: If the repository cannot be queried.
        """

    def has_version(self, repository: str, name: str, version: str) -> bool:
        """Return True if ``repository`` offers ``name`` at ``version``."""
        try:
            return version in self.versions(repository, name)
        except DistributionNotFound:
            return False
