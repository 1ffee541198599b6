"""Dependency resolution.

Turns a module's dependency declarations into concrete, pinned artifacts:

- external dependencies get their version from the declaration, or else from
  the imported managed platform; the version must exist in one of the
  module's repositories;
- project dependencies resolve to the library archive the upstream module
  published in the artifact repository.

The result is sorted by scope and name and carries a fingerprint, so the same
declarations and platform always give byte-identical lock files.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from buildline.domain.errors import DependencyResolutionError
from buildline.domain.model import DependencyDeclaration, Module, Plugin, Project, Scope
from buildline.interfaces.artifact_repository import ArtifactNotFound, ArtifactRepository
from buildline.interfaces.package_index import IndexUnavailable, PackageIndex

logger = logging.getLogger(__name__)

LOCK_FILE = "dependencies.lock.json"
_SCOPE_ORDER = {Scope.COMPILE: 0, Scope.RUNTIME: 1, Scope.TEST: 2}


@dataclass(frozen=True)
class ResolvedDependency:  # pylint: disable=too-many-instance-attributes
    """A dependency pinned to a concrete version (and archive, for projects)."""

    name: str
    version: str
    scope: Scope
    source: str
    import_name: str
    project: bool = False
    checksum: str | None = None
    archive: Path | None = None

    @property
    def requirement(self) -> str:
        return f"{self.name}=={self.version}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "scope": self.scope.value,
            "source": self.source,
            "import": self.import_name,
            "project": self.project,
            "checksum": self.checksum,
        }


@dataclass(frozen=True)
class Resolution:
    """All resolved dependencies of one module."""

    module: str
    platform: str | None
    dependencies: tuple[ResolvedDependency, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "platform": self.platform,
            "dependencies": [d.to_dict() for d in self.dependencies],
        }

    @property
    def fingerprint(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def in_scopes(self, *scopes: Scope) -> tuple[ResolvedDependency, ...]:
        return tuple(d for d in self.dependencies if d.scope in scopes)

    def project_archives(self, *scopes: Scope) -> list[Path]:
        """Archives of project dependencies in ``scopes`` (all scopes if none given)."""
        wanted = scopes or tuple(Scope)
        return [
            d.archive
            for d in self.dependencies
            if d.project and d.archive is not None and d.scope in wanted
        ]

    def write_lock(self, path: Path) -> Path:
        """Write the lock file (stable key order, trailing newline)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = dict(self.to_dict(), fingerprint=self.fingerprint)
        path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        return path


def pinned_version(module: Module, dep: DependencyDeclaration) -> tuple[str, str]:
    """Return the version ``dep`` resolves to and where it came from.

    A declared version wins over the managed platform's pin.

    Raises:
        DependencyResolutionError: If neither provides a version.
    """
    if dep.version:
        return dep.version, "declared"
    if module.platform is not None and module.has(Plugin.DEPENDENCY_MANAGEMENT):
        if pinned := module.platform.pin_for(dep.name):
            return pinned, "platform"
        raise DependencyResolutionError(
            module.name,
            dep.coordinate,
            f"no version declared and platform {module.platform.name} does not manage it",
        )
    raise DependencyResolutionError(
        module.name, dep.coordinate, "no version declared and no managed platform imported"
    )


class DependencyResolver:
    """Resolve module dependencies against package repositories and the artifact repository."""

    def __init__(
        self, project: Project, index: PackageIndex, artifacts: ArtifactRepository
    ) -> None:
        self._project = project
        self._index = index
        self._artifacts = artifacts

    def resolve(self, module: Module, *, materialize: bool = True) -> Resolution:
        """Resolve every declaration of ``module``.

        Args:
            module: The module to resolve.
            materialize: Copy project archives into ``build/dependencies`` so
                they can go on the import path.

        Raises:
            DependencyResolutionError: On the first dependency that cannot be
                resolved.
        """
        resolved = [
            self._resolve_project(module, dep, materialize)
            if dep.project
            else self._resolve_external(module, dep)
            for dep in module.dependencies
        ]
        resolved.sort(key=lambda d: (_SCOPE_ORDER[d.scope], d.project, d.name.lower()))
        platform = (
            f"{module.platform.name}:{module.platform.version}"
            if module.platform is not None
            else None
        )
        resolution = Resolution(module=module.name, platform=platform, dependencies=tuple(resolved))
        logger.debug(
            "Resolved %d dependencies for %s (%s)",
            len(resolved),
            module.name,
            resolution.fingerprint[:12],
        )
        return resolution

    # --- Internal Helpers ---

    def _resolve_external(self, module: Module, dep: DependencyDeclaration) -> ResolvedDependency:
        version, source = pinned_version(module, dep)
        problems: list[str] = []
        for repository in module.repositories:
            try:
                if self._index.has_version(repository, dep.name, version):
                    break
            except IndexUnavailable as e:
                problems.append(str(e))
                continue
            problems.append(f"version {version} not found in {repository}")
        else:
            raise DependencyResolutionError(
                module.name,
                f"{dep.name}=={version}",
                "; ".join(problems) or "no repositories declared",
            )
        return ResolvedDependency(
            name=dep.key,
            version=version,
            scope=dep.scope,
            source=source,
            import_name=dep.top_level,
        )

    def _resolve_project(
        self, module: Module, dep: DependencyDeclaration, materialize: bool
    ) -> ResolvedDependency:
        upstream = self._project.module(dep.name)
        try:
            record = self._artifacts.locate(upstream.group, upstream.name, upstream.version)
        except ArtifactNotFound as e:
            raise DependencyResolutionError(
                module.name,
                dep.coordinate,
                f"{e}; build module '{upstream.name}' first",
            ) from e
        archive = (
            self._artifacts.materialize(record, module.build_dir / "dependencies")
            if materialize
            else None
        )
        return ResolvedDependency(
            name=upstream.name,
            version=upstream.version,
            scope=dep.scope,
            source="project",
            import_name=dep.top_level,
            project=True,
            checksum=record.sha256,
            archive=archive,
        )
