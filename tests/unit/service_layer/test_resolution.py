"""Unit tests for dependency resolution."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from buildline.adapters.artifact_repository import LocalArtifactRepository
from buildline.adapters.filestore.memory import MemoryFileStore
from buildline.adapters.package_index import InMemoryPackageIndex
from buildline.domain.errors import DependencyResolutionError
from buildline.domain.model import (
    DependencyDeclaration,
    LanguageLevel,
    ManagedPlatform,
    Module,
    Plugin,
    Project,
    RootPolicy,
    Scope,
)
from buildline.interfaces.package_index import IndexUnavailable, PackageIndex
from buildline.service_layer.resolution import DependencyResolver, pinned_version

# pylint: disable=magic-value-comparison

REPO = "https://mirror.example.test/simple"
PY311 = LanguageLevel(3, 11)
PLATFORM = ManagedPlatform(
    "web", "2.5.4", {"fastapi": "0.110.0", "aiosqlite": "0.20.0", "pytest": "8.1.1"}
)

DECLARATIONS = (
    DependencyDeclaration("fastapi", Scope.COMPILE),
    DependencyDeclaration("aiosqlite", Scope.RUNTIME),
    DependencyDeclaration("pytest", Scope.TEST),
    DependencyDeclaration("httpx", Scope.COMPILE, "0.27.0"),
    DependencyDeclaration("server", Scope.TEST, project=True),
)


def make_module(
    root: Path, name: str = "client", dependencies=DECLARATIONS, **overrides
) -> Module:
    fields = {
        "name": name,
        "path": root / name,
        "group": "g",
        "version": "1.0",
        "source_level": PY311,
        "target_level": PY311,
        "plugins": frozenset({Plugin.DEPENDENCY_MANAGEMENT}),
        "dependencies": tuple(dependencies),
        "repositories": (REPO,),
        "platform": PLATFORM,
    }
    fields.update(overrides)
    return Module(**fields)


def make_index() -> InMemoryPackageIndex:
    return InMemoryPackageIndex(
        {
            REPO: {
                "fastapi": ["0.110.0"],
                "aiosqlite": ["0.20.0"],
                "pytest": ["8.1.1"],
                "httpx": ["0.27.0"],
            }
        }
    )


def setup_resolver(
    root: Path, client: Module, index: PackageIndex | None = None
) -> tuple[DependencyResolver, LocalArtifactRepository]:
    server = make_module(root, "server", dependencies=())
    project = Project(root, RootPolicy("g"), {"server": server, client.name: client})
    artifacts = LocalArtifactRepository(root / "repo", MemoryFileStore())
    archive = root / "server-1.0.zip"
    archive.write_bytes(b"PK fake archive")
    artifacts.publish("g", "server", "1.0", archive)
    return DependencyResolver(project, index or make_index(), artifacts), artifacts


class UnreachableIndex(PackageIndex):
    """Every query fails as if the network were down."""

    def versions(self, repository: str, name: str) -> list[str]:
        raise IndexUnavailable(f"cannot reach {repository}")


class TestPinnedVersion:
    """Where an external dependency's version comes from."""

    @staticmethod
    def test_declared_version_wins(tmp_path: Path):
        module = make_module(tmp_path)
        dep = DependencyDeclaration("fastapi", Scope.COMPILE, "0.109.0")
        assert pinned_version(module, dep) == ("0.109.0", "declared")

    @staticmethod
    def test_platform_pin(tmp_path: Path):
        module = make_module(tmp_path)
        assert pinned_version(module, DECLARATIONS[0]) == ("0.110.0", "platform")

    @staticmethod
    def test_platform_without_pin(tmp_path: Path):
        module = make_module(tmp_path)
        dep = DependencyDeclaration("respx", Scope.TEST)
        with pytest.raises(DependencyResolutionError, match="platform web does not manage it"):
            pinned_version(module, dep)

    @staticmethod
    def test_no_platform(tmp_path: Path):
        module = make_module(tmp_path, platform=None, plugins=frozenset())
        with pytest.raises(DependencyResolutionError, match="no managed platform imported"):
            pinned_version(module, DECLARATIONS[0])


class TestResolve:
    """`DependencyResolver.resolve`."""

    @staticmethod
    def test_resolves_every_declaration(tmp_path: Path):
        client = make_module(tmp_path)
        resolver, _ = setup_resolver(tmp_path, client)

        resolution = resolver.resolve(client)

        assert resolution.platform == "web:2.5.4"
        assert [(d.scope, d.name, d.version, d.source) for d in resolution.dependencies] == [
            (Scope.COMPILE, "fastapi", "0.110.0", "platform"),
            (Scope.COMPILE, "httpx", "0.27.0", "declared"),
            (Scope.RUNTIME, "aiosqlite", "0.20.0", "platform"),
            (Scope.TEST, "pytest", "8.1.1", "platform"),
            (Scope.TEST, "server", "1.0", "project"),
        ]

    @staticmethod
    def test_project_archive_is_materialized(tmp_path: Path):
        client = make_module(tmp_path)
        resolver, _ = setup_resolver(tmp_path, client)

        resolution = resolver.resolve(client)

        archives = resolution.project_archives()
        assert archives == [client.build_dir / "dependencies" / "server-1.0.zip"]
        assert archives[0].read_bytes() == b"PK fake archive"
        assert resolution.project_archives(Scope.COMPILE, Scope.RUNTIME) == []

    @staticmethod
    def test_without_materializing(tmp_path: Path):
        client = make_module(tmp_path)
        resolver, _ = setup_resolver(tmp_path, client)

        resolution = resolver.resolve(client, materialize=False)

        assert resolution.project_archives() == []
        assert not (client.build_dir / "dependencies").exists()
        assert resolution.dependencies[-1].checksum is not None

    @staticmethod
    def test_version_missing_from_repository(tmp_path: Path):
        pinned = DependencyDeclaration("fastapi", Scope.COMPILE, "9.9.9")
        client = make_module(tmp_path, dependencies=[pinned])
        resolver, _ = setup_resolver(tmp_path, client)
        with pytest.raises(DependencyResolutionError, match=r"9.9.9.*not found in"):
            resolver.resolve(client)

    @staticmethod
    def test_unreachable_index(tmp_path: Path):
        client = make_module(tmp_path, dependencies=DECLARATIONS[:1])
        resolver, _ = setup_resolver(tmp_path, client, UnreachableIndex())
        with pytest.raises(DependencyResolutionError, match="cannot reach"):
            resolver.resolve(client)

    @staticmethod
    def test_unpublished_upstream(tmp_path: Path):
        """Building downstream without upstream artifacts fails at resolve time."""
        upstream = DependencyDeclaration("model", Scope.COMPILE, project=True)
        client = make_module(tmp_path, dependencies=[upstream])
        model = make_module(tmp_path, "model", dependencies=())
        project = Project(tmp_path, RootPolicy("g"), {"model": model, "client": client})
        artifacts = LocalArtifactRepository(tmp_path / "repo")
        resolver = DependencyResolver(project, make_index(), artifacts)

        with pytest.raises(DependencyResolutionError, match="build module 'model' first"):
            resolver.resolve(client)


class TestLockFile:
    """Lock files are reproducible."""

    @staticmethod
    def test_write_lock(tmp_path: Path):
        client = make_module(tmp_path)
        resolver, _ = setup_resolver(tmp_path, client)
        resolution = resolver.resolve(client)

        path = resolution.write_lock(tmp_path / "lock" / "dependencies.lock.json")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["fingerprint"] == resolution.fingerprint
        assert data["module"] == "client"
        assert path.read_text(encoding="utf-8").endswith("}\n")

    @staticmethod
    @settings(max_examples=25, deadline=None)
    @given(st.permutations(DECLARATIONS))
    def test_declaration_order_does_not_matter(tmp_path_factory, declarations):
        """Same declarations in any order give the same fingerprint and lock."""
        root = tmp_path_factory.mktemp("perm")
        baseline = make_module(root)
        permuted = make_module(root, dependencies=declarations)
        resolver, _ = setup_resolver(root, baseline)

        first = resolver.resolve(baseline, materialize=False)
        second = resolver.resolve(permuted, materialize=False)

        assert first == second
        assert first.fingerprint == second.fingerprint
