"""Dependency freshness report.

For every external dependency of every module, compare the version in use
(declared or platform-managed) with the newest version the module's
repositories offer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from packaging.version import InvalidVersion, Version

from buildline.domain.errors import ConfigError, DependencyResolutionError
from buildline.domain.model import Module, Plugin, Project
from buildline.interfaces.package_index import DistributionNotFound, IndexUnavailable, PackageIndex

from .resolution import pinned_version

logger = logging.getLogger(__name__)


class UpdateStatus(Enum):
    """How a dependency's current version compares with the latest available."""

    UP_TO_DATE = "up-to-date"
    OUTDATED = "outdated"
    EXCEEDED = "exceeded"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class DependencyUpdate:
    """One row of the report."""

    module: str
    name: str
    scope: str
    current: str | None
    latest: str | None
    status: UpdateStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "name": self.name,
            "scope": self.scope,
            "current": self.current,
            "latest": self.latest,
            "status": self.status.value,
        }


def latest_version(versions: list[str], include_prereleases: bool = False) -> Version | None:
    """Newest parseable version in ``versions``, ignoring pre-releases unless asked."""
    parsed = []
    for raw in versions:
        try:
            version = Version(raw)
        except InvalidVersion:
            continue
        if (version.is_prerelease or version.is_devrelease) and not include_prereleases:
            continue
        parsed.append(version)
    return max(parsed, default=None)


def classify(current: str | None, latest: Version | None) -> UpdateStatus:
    if current is None or latest is None:
        return UpdateStatus.UNRESOLVED
    try:
        in_use = Version(current)
    except InvalidVersion:
        return UpdateStatus.UNRESOLVED
    if in_use == latest:
        return UpdateStatus.UP_TO_DATE
    return UpdateStatus.OUTDATED if in_use < latest else UpdateStatus.EXCEEDED


class UpdateChecker:
    """Build the freshness report from a package index."""

    def __init__(self, index: PackageIndex) -> None:
        self._index = index

    def check(
        self,
        project: Project,
        modules: list[str] | None = None,
        include_prereleases: bool = False,
    ) -> list[DependencyUpdate]:
        """Return report rows for ``modules`` (default: all), sorted by module and name.

        Raises:
            ConfigError: If the root policy does not apply the
                dependency-updates plugin.
        """
        if not project.policy.has(Plugin.DEPENDENCY_UPDATES):
            raise ConfigError(
                f"The '{Plugin.DEPENDENCY_UPDATES.value}' plugin is not applied on the root policy"
            )
        names = modules or list(project.modules)
        rows: list[DependencyUpdate] = []
        for name in names:
            rows.extend(self._check_module(project.module(name), include_prereleases))
        return sorted(rows, key=lambda r: (r.module, r.name, r.scope))

    def _check_module(self, module: Module, include_prereleases: bool) -> list[DependencyUpdate]:
        rows = []
        for dep in module.external_dependencies():
            try:
                current, _ = pinned_version(module, dep)
            except DependencyResolutionError:
                current = None
            available: list[str] = []
            for repository in module.repositories:
                try:
                    available.extend(self._index.versions(repository, dep.name))
                except (DistributionNotFound, IndexUnavailable) as e:
                    logger.debug("No versions of %s from %s: %s", dep.name, repository, e)
            latest = latest_version(available, include_prereleases)
            rows.append(
                DependencyUpdate(
                    module=module.name,
                    name=dep.key,
                    scope=dep.scope.value,
                    current=current,
                    latest=str(latest) if latest is not None else None,
                    status=classify(current, latest),
                )
            )
        return rows
