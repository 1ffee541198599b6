"""Build metadata: the project, its root policy and its modules.

Everything here is immutable once loaded from the project descriptor. The
objects describe *what* to build; the service layer decides *how*.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import ConfigError, DependencyCycleError, PluginVersionError

UNSPECIFIED_VERSION = "unspecified"

_LEVEL_RE = re.compile(r"^(?P<major>\d+)\.(?P<minor>\d+)$")
_NAME_NORMALIZE_RE = re.compile(r"[-_.]+")


def normalize_name(name: str) -> str:
    """Normalize a distribution name (PEP 503)."""
    return _NAME_NORMALIZE_RE.sub("-", name).lower()


# ============================================================================
#                                 Plugins
# ============================================================================


class Plugin(Enum):
    """Built-in plugins, each available at exactly one version."""

    FORMATTING = "formatting"
    DEPENDENCY_UPDATES = "dependency-updates"
    APPLICATION = "application"
    DEPENDENCY_MANAGEMENT = "dependency-management"
    CONTAINER_IMAGE = "container-image"

    @property
    def version(self) -> str:
        """Version of the plugin shipped with buildline."""
        return PLUGIN_VERSIONS[self]

    @property
    def root_only(self) -> bool:
        """Whether the plugin may only be applied on the root policy."""
        return self in ROOT_PLUGINS


PLUGIN_VERSIONS: dict[Plugin, str] = {
    Plugin.FORMATTING: "5.12.4",
    Plugin.DEPENDENCY_UPDATES: "0.38.0",
    Plugin.APPLICATION: "2.5.4",
    Plugin.DEPENDENCY_MANAGEMENT: "1.0.11",
    Plugin.CONTAINER_IMAGE: "3.1.4",
}

ROOT_PLUGINS = frozenset({Plugin.FORMATTING, Plugin.DEPENDENCY_UPDATES})


def apply_plugins(declared: Mapping[str, str], *, root: bool) -> frozenset[Plugin]:
    """Validate a ``{plugin-id: version}`` mapping and return the applied plugins.

    Raises:
        ConfigError: If a plugin id is unknown or applied at the wrong level.
        PluginVersionError: If the requested version differs from the shipped one.
    """
    applied: set[Plugin] = set()
    for plugin_id, version in declared.items():
        try:
            plugin = Plugin(plugin_id)
        except ValueError as e:
            raise ConfigError(f"Unknown plugin '{plugin_id}'") from e
        if plugin.root_only != root:
            where = "the root policy" if plugin.root_only else "a module"
            raise ConfigError(f"Plugin '{plugin_id}' can only be applied on {where}")
        if str(version) != plugin.version:
            raise PluginVersionError(plugin_id, str(version), plugin.version)
        applied.add(plugin)
    return frozenset(applied)


# ============================================================================
#                              Value objects
# ============================================================================


@dataclass(frozen=True, order=True)
class LanguageLevel:
    """A Python language level such as ``3.11``."""

    major: int
    minor: int

    @classmethod
    def parse(cls, value: str | float) -> LanguageLevel:
        """Parse ``"3.11"`` into a language level.

        Raises:
            ConfigError: If the value is not of the form ``MAJOR.MINOR``.
        """
        if not (match := _LEVEL_RE.match(str(value).strip())):
            raise ConfigError(f"Invalid language level {value!r}, expected e.g. '3.11'")
        return cls(int(match["major"]), int(match["minor"]))

    def as_tuple(self) -> tuple[int, int]:
        return (self.major, self.minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


class Scope(Enum):
    """Dependency scope."""

    COMPILE = "compile"
    RUNTIME = "runtime"
    TEST = "test"


@dataclass(frozen=True)
class DependencyDeclaration:
    """A dependency as written in the descriptor.

    Attributes:
        name: Distribution name, or module name when ``project`` is True.
        scope: Where the dependency is visible.
        version: Locally pinned version, ``None`` when the platform manages it.
        project: True for a dependency on another module of the project.
        import_name: Top-level import name, defaults to the normalized name
            with dashes replaced by underscores.
    """

    name: str
    scope: Scope
    version: str | None = None
    project: bool = False
    import_name: str | None = None

    @property
    def key(self) -> str:
        return self.name if self.project else normalize_name(self.name)

    @property
    def top_level(self) -> str:
        return self.import_name or self.key.replace("-", "_")

    @property
    def coordinate(self) -> str:
        if self.project:
            return f"project :{self.name}"
        return f"{self.name}=={self.version}" if self.version else self.name


@dataclass(frozen=True)
class ManagedPlatform:
    """An imported dependency-management platform (a bill of materials)."""

    name: str
    version: str
    pins: Mapping[str, str] = field(default_factory=dict)

    def pin_for(self, name: str) -> str | None:
        return self.pins.get(normalize_name(name))


@dataclass(frozen=True)
class ContainerImageDescriptor:
    """How a module's container image is produced."""

    base_image: str
    image: str
    tag: str
    entrypoint: tuple[str, ...] = ()
    platform: str = "linux/amd64"
    environment: Mapping[str, str] = field(default_factory=dict)

    @property
    def reference(self) -> str:
        return f"{self.image}:{self.tag}"


@dataclass(frozen=True)
class SourceSets:
    """Locations of a module's main and test sources, relative to the module."""

    main: str = "src"
    test: str = "tests"


# ============================================================================
#                              Root policy
# ============================================================================


class FormattingMode(Enum):
    """Whether the formatter rewrites files or only reports them."""

    APPLY = "apply"
    CHECK = "check"


DEFAULT_EXCLUDES = ("build", "__pycache__", ".venv", "venv", ".tox", "node_modules")


@dataclass(frozen=True)
class FormattingPolicy:
    """Uniform source formatting applied to the whole project."""

    python_targets: tuple[str, ...] = ("**/*.py",)
    build_script_targets: tuple[str, ...] = ("**/buildline.yaml",)
    exclude: tuple[str, ...] = DEFAULT_EXCLUDES
    remove_unused_imports: bool = True
    line_length: int = 88
    mode: FormattingMode = FormattingMode.APPLY


@dataclass(frozen=True)
class RootPolicy:
    """Shared identity and policy for every module."""

    group: str
    version: str = UNSPECIFIED_VERSION
    plugins: frozenset[Plugin] = frozenset()
    formatting: FormattingPolicy = field(default_factory=FormattingPolicy)

    def has(self, plugin: Plugin) -> bool:
        return plugin in self.plugins


# ============================================================================
#                                 Modules
# ============================================================================


@dataclass(frozen=True)
class Module:  # pylint: disable=too-many-instance-attributes
    """An independently buildable and testable unit of the project."""

    name: str
    path: Path
    group: str
    version: str
    source_level: LanguageLevel
    target_level: LanguageLevel
    plugins: frozenset[Plugin] = frozenset()
    dependencies: tuple[DependencyDeclaration, ...] = ()
    repositories: tuple[str, ...] = ()
    platform: ManagedPlatform | None = None
    sources: SourceSets = field(default_factory=SourceSets)
    main: str | None = None
    packaging_enabled: bool = True
    container: ContainerImageDescriptor | None = None
    test_platform: str = "pytest"

    def has(self, plugin: Plugin) -> bool:
        return plugin in self.plugins

    @property
    def coordinate(self) -> str:
        return f"{self.group}:{self.name}:{self.version}"

    @property
    def main_dir(self) -> Path:
        return self.path / self.sources.main

    @property
    def test_dir(self) -> Path:
        return self.path / self.sources.test

    @property
    def build_dir(self) -> Path:
        return self.path / "build"

    @property
    def produces_image(self) -> bool:
        """Whether the package stage builds a container image for this module."""
        return (
            self.packaging_enabled
            and self.container is not None
            and self.has(Plugin.CONTAINER_IMAGE)
        )

    def project_dependencies(self) -> tuple[DependencyDeclaration, ...]:
        return tuple(d for d in self.dependencies if d.project)

    def external_dependencies(self) -> tuple[DependencyDeclaration, ...]:
        return tuple(d for d in self.dependencies if not d.project)

    def validate(self) -> None:
        """Check plugin preconditions that involve several module settings.

        Raises:
            ConfigError: On any inconsistency.
        """
        if self.platform is not None and not self.has(Plugin.DEPENDENCY_MANAGEMENT):
            raise ConfigError(
                f"Module '{self.name}' imports a platform but does not apply "
                f"the '{Plugin.DEPENDENCY_MANAGEMENT.value}' plugin"
            )
        if not self.packaging_enabled and (
            self.container is not None or self.has(Plugin.CONTAINER_IMAGE)
        ):
            raise ConfigError(
                f"Module '{self.name}' has packaging disabled and cannot "
                "declare a container image"
            )
        if self.has(Plugin.CONTAINER_IMAGE):
            if not self.has(Plugin.APPLICATION) or not self.main:
                raise ConfigError(
                    f"Module '{self.name}' applies '{Plugin.CONTAINER_IMAGE.value}' "
                    f"and needs the '{Plugin.APPLICATION.value}' plugin with a main module"
                )
            if self.container is None:
                raise ConfigError(
                    f"Module '{self.name}' applies '{Plugin.CONTAINER_IMAGE.value}' "
                    "but declares no container section"
                )
        if self.target_level < self.source_level:
            raise ConfigError(
                f"Module '{self.name}' targets {self.target_level}, "
                f"older than its source level {self.source_level}"
            )
        if self.test_platform != "pytest":
            raise ConfigError(
                f"Module '{self.name}' uses unsupported test platform "
                f"{self.test_platform!r} (only 'pytest' is available)"
            )


# ============================================================================
#                                 Project
# ============================================================================


@dataclass(frozen=True)
class Project:
    """A root policy plus the modules it governs."""

    root: Path
    policy: RootPolicy
    modules: Mapping[str, Module]

    def __iter__(self) -> Iterator[Module]:
        return iter(self.modules.values())

    def module(self, name: str) -> Module:
        try:
            return self.modules[name]
        except KeyError as e:
            known = ", ".join(self.modules) or "<none>"
            raise ConfigError(f"Unknown module '{name}' (known: {known})") from e

    def upstream(self, name: str) -> tuple[str, ...]:
        """Names of the modules ``name`` depends on directly."""
        return tuple(d.name for d in self.module(name).project_dependencies())

    def closure(self, names: list[str]) -> list[str]:
        """Return ``names`` plus all their transitive upstream modules."""
        seen: set[str] = set()
        stack = list(names)
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.upstream(current))
        return [name for name in self.topological_order() if name in seen]

    def topological_order(self) -> list[str]:
        """Module names ordered so that every module follows its upstream modules.

        Ties keep descriptor order, so the result is deterministic.

        Raises:
            DependencyCycleError: If project dependencies form a cycle.
        """
        order: list[str] = []
        state: dict[str, str] = {}

        def visit(name: str, trail: list[str]) -> None:
            if state.get(name) == "done":
                return
            if state.get(name) == "visiting":
                raise DependencyCycleError(trail[trail.index(name) :] + [name])
            state[name] = "visiting"
            for upstream in self.upstream(name):
                visit(upstream, trail + [name])
            state[name] = "done"
            order.append(name)

        for name in self.modules:
            visit(name, [])
        return order

    def validate(self) -> None:
        """Validate every module and the graph between them."""
        for module in self:
            module.validate()
            for dep in module.project_dependencies():
                if dep.name not in self.modules:
                    raise ConfigError(
                        f"Module '{module.name}' depends on unknown module '{dep.name}'"
                    )
                if dep.name == module.name:
                    raise DependencyCycleError([module.name, module.name])
        self.topological_order()

    def lowest_language_level(self) -> LanguageLevel | None:
        levels = [m.source_level for m in self]
        return min(levels) if levels else None
