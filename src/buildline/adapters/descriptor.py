"""YAML project descriptor loader.

Reads ``buildline.yaml`` with PyYAML and turns it into the immutable domain
model (`Project`, `RootPolicy`, `Module`...). All validation failures raise
`ConfigError` with the dotted location of the offending key.

Example descriptor::

    group: uk.co.example
    version: 0.0.1.dev0
    language: "3.11"
    repositories: ["https://pypi.org/simple"]
    plugins:
      formatting: 5.12.4
      dependency-updates: 0.38.0
    modules:
      server:
        plugins: {application: 2.5.4, dependency-management: 1.0.11, container-image: 3.1.4}
        platform: {file: platforms/web.yaml}
        application: {main: carsapi}
        dependencies:
          compile: [fastapi, sqlalchemy]
          runtime: [aiosqlite]
          test: [pytest]
        container: {base_image: gcr.io/distroless/python3-debian12}
      integration-tests:
        plugins: {application: 2.5.4, dependency-management: 1.0.11}
        platform: {file: platforms/web.yaml}
        application: {packaging: false}
        dependencies:
          test: [{project: server}, pytest, respx]
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from buildline.config import DEFAULT_BASE_IMAGE, DEFAULT_REPOSITORY
from buildline.domain.errors import ConfigError
from buildline.domain.model import (
    DEFAULT_EXCLUDES,
    UNSPECIFIED_VERSION,
    ContainerImageDescriptor,
    DependencyDeclaration,
    FormattingMode,
    FormattingPolicy,
    LanguageLevel,
    ManagedPlatform,
    Module,
    Plugin,
    Project,
    RootPolicy,
    Scope,
    SourceSets,
    apply_plugins,
    normalize_name,
)

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE_LEVEL = "3.11"

_REQUIREMENT_RE = re.compile(r"^(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)\s*(?:==\s*(?P<version>\S+))?$")
_TAG_INVALID_RE = re.compile(r"[^A-Za-z0-9_.-]")


# ============================================================================
#                              Small readers
# ============================================================================


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{where} must be a mapping")
    return value


def _list(value: Any, where: str) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, list):
        raise ConfigError(f"{where} must be a list")
    return value


def _string(value: Any, where: str, default: str | None = None) -> str:
    if value is None:
        if default is None:
            raise ConfigError(f"{where} is required")
        return default
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigError(f"{where} must be a string")
    return str(value)


def _bool(value: Any, where: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"{where} must be true or false")
    return value


def _level(value: Any, where: str) -> LanguageLevel:
    if isinstance(value, float):
        raise ConfigError(f"{where} must be a quoted string such as '3.11'")
    try:
        return LanguageLevel.parse(_string(value, where))
    except ConfigError as e:
        raise ConfigError(f"{where}: {e}") from e


def _read_yaml(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"File not found: {path}") from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e


# ============================================================================
#                               Sections
# ============================================================================


def _formatting(raw: Any) -> FormattingPolicy:
    data = _mapping(raw, "formatting")
    targets = _mapping(data.get("targets"), "formatting.targets")
    mode_value = _string(data.get("mode"), "formatting.mode", FormattingMode.APPLY.value)
    try:
        mode = FormattingMode(mode_value)
    except ValueError as e:
        raise ConfigError(f"formatting.mode must be 'apply' or 'check', got {mode_value!r}") from e
    line_length = data.get("line_length", 88)
    if isinstance(line_length, bool) or not isinstance(line_length, int) or line_length < 1:
        raise ConfigError("formatting.line_length must be a positive integer")
    return FormattingPolicy(
        python_targets=tuple(
            _string(t, "formatting.targets.python[]")
            for t in _list(targets.get("python", ["**/*.py"]), "formatting.targets.python")
        ),
        build_script_targets=tuple(
            _string(t, "formatting.targets.build_scripts[]")
            for t in _list(
                targets.get("build_scripts", ["**/buildline.yaml"]),
                "formatting.targets.build_scripts",
            )
        ),
        exclude=tuple(
            _string(e, "formatting.exclude[]")
            for e in _list(data.get("exclude", list(DEFAULT_EXCLUDES)), "formatting.exclude")
        ),
        remove_unused_imports=_bool(
            data.get("remove_unused_imports"), "formatting.remove_unused_imports", True
        ),
        line_length=line_length,
        mode=mode,
    )


def _dependency(entry: Any, scope: Scope, where: str) -> DependencyDeclaration:
    if isinstance(entry, str):
        if not (match := _REQUIREMENT_RE.match(entry.strip())):
            raise ConfigError(f"{where}: expected 'name' or 'name==version', got {entry!r}")
        return DependencyDeclaration(
            name=match["name"], scope=scope, version=match["version"]
        )
    data = _mapping(entry, where)
    if "project" in data:
        return DependencyDeclaration(
            name=_string(data["project"], f"{where}.project"), scope=scope, project=True
        )
    name = _string(data.get("name"), f"{where}.name")
    if not _REQUIREMENT_RE.match(name):
        raise ConfigError(f"{where}.name: invalid distribution name {name!r}")
    version = data.get("version")
    import_name = data.get("import")
    return DependencyDeclaration(
        name=name,
        scope=scope,
        version=_string(version, f"{where}.version") if version is not None else None,
        import_name=_string(import_name, f"{where}.import") if import_name is not None else None,
    )


def _dependencies(raw: Any, where: str) -> tuple[DependencyDeclaration, ...]:
    data = _mapping(raw, where)
    declarations: list[DependencyDeclaration] = []
    for scope_name, entries in data.items():
        try:
            scope = Scope(scope_name)
        except ValueError as e:
            raise ConfigError(
                f"{where}: unknown scope {scope_name!r} (use compile, runtime or test)"
            ) from e
        for i, entry in enumerate(_list(entries, f"{where}.{scope_name}")):
            declarations.append(_dependency(entry, scope, f"{where}.{scope_name}[{i}]"))

    seen: dict[str, Scope] = {}
    for dep in declarations:
        if dep.key in seen:
            raise ConfigError(
                f"{where}: {dep.name!r} is declared twice "
                f"({seen[dep.key].value} and {dep.scope.value})"
            )
        seen[dep.key] = dep.scope
    return tuple(declarations)


def _platform(raw: Any, root: Path, where: str) -> ManagedPlatform | None:
    if raw is None:
        return None
    data = _mapping(raw, where)
    if "file" in data:
        path = root / _string(data["file"], f"{where}.file")
        data = _mapping(_read_yaml(path), str(path))
        where = str(path)
    pins = _mapping(data.get("pins"), f"{where}.pins")
    return ManagedPlatform(
        name=_string(data.get("name"), f"{where}.name"),
        version=_string(data.get("version"), f"{where}.version"),
        pins={
            normalize_name(name): _string(version, f"{where}.pins.{name}")
            for name, version in pins.items()
        },
    )


def _container(
    raw: Any, name: str, version: str, where: str
) -> ContainerImageDescriptor | None:
    if raw is None:
        return None
    data = _mapping(raw, where)
    tag_default = _TAG_INVALID_RE.sub("-", version)[:128]
    entrypoint = data.get("entrypoint")
    environment = _mapping(data.get("environment"), f"{where}.environment")
    platform = _string(data.get("platform"), f"{where}.platform", "linux/amd64")
    if platform.count("/") not in (1, 2):
        raise ConfigError(f"{where}.platform must look like 'linux/amd64', got {platform!r}")
    return ContainerImageDescriptor(
        base_image=_string(data.get("base_image"), f"{where}.base_image", DEFAULT_BASE_IMAGE),
        image=_string(data.get("image"), f"{where}.image", name.lower()),
        tag=_string(data.get("tag"), f"{where}.tag", tag_default),
        entrypoint=tuple(
            _string(e, f"{where}.entrypoint[]")
            for e in _list(entrypoint, f"{where}.entrypoint")
        ),
        platform=platform,
        environment={
            str(k): _string(v, f"{where}.environment.{k}") for k, v in environment.items()
        },
    )


def _module(  # pylint: disable=too-many-locals
    name: str,
    raw: Any,
    *,
    root: Path,
    policy: RootPolicy,
    defaults: Mapping[str, Any],
) -> Module:
    where = f"modules.{name}"
    data = _mapping(raw, where)

    plugins = apply_plugins(
        {str(k): str(v) for k, v in _mapping(data.get("plugins"), f"{where}.plugins").items()},
        root=False,
    )

    root_language = defaults.get("language", DEFAULT_LANGUAGE_LEVEL)
    inherited = (
        root_language.get("source", DEFAULT_LANGUAGE_LEVEL)
        if isinstance(root_language, Mapping)
        else root_language
    )
    language = data.get("language", root_language)
    if isinstance(language, Mapping):
        source = _level(language.get("source", inherited), f"{where}.language.source")
        target = _level(language.get("target", str(source)), f"{where}.language.target")
    else:
        source = target = _level(language, f"{where}.language")

    version = _string(data.get("version"), f"{where}.version", policy.version)

    application = data.get("application")
    if application is not None and Plugin.APPLICATION not in plugins:
        raise ConfigError(
            f"{where}.application requires the '{Plugin.APPLICATION.value}' plugin"
        )
    app = _mapping(application, f"{where}.application")
    main = app.get("main")

    sources = _mapping(data.get("sources"), f"{where}.sources")
    repositories = _list(
        data.get("repositories", defaults.get("repositories", [DEFAULT_REPOSITORY])),
        f"{where}.repositories",
    )
    if not repositories:
        raise ConfigError(f"{where}.repositories must list at least one repository")

    test = _mapping(data.get("test"), f"{where}.test")

    return Module(
        name=name,
        path=(root / _string(data.get("path"), f"{where}.path", name)).resolve(),
        group=policy.group,
        version=version,
        source_level=source,
        target_level=target,
        plugins=plugins,
        dependencies=_dependencies(data.get("dependencies"), f"{where}.dependencies"),
        repositories=tuple(
            _string(r, f"{where}.repositories[]").rstrip("/") for r in repositories
        ),
        platform=_platform(data.get("platform"), root, f"{where}.platform"),
        sources=SourceSets(
            main=_string(sources.get("main"), f"{where}.sources.main", "src"),
            test=_string(sources.get("test"), f"{where}.sources.test", "tests"),
        ),
        main=_string(main, f"{where}.application.main") if main is not None else None,
        packaging_enabled=_bool(app.get("packaging"), f"{where}.application.packaging", True),
        container=_container(data.get("container"), name, version, f"{where}.container"),
        test_platform=_string(test.get("platform"), f"{where}.test.platform", "pytest"),
    )


# ============================================================================
#                                 Public API
# ============================================================================


def parse_project(data: Any, root: Path) -> Project:
    """Build a validated `Project` from already-parsed descriptor data.

    Args:
        data: The parsed YAML document.
        root: Project root directory; module paths and platform files are
            relative to it.

    Raises:
        ConfigError: If anything is missing or inconsistent.
    """
    doc = _mapping(data, "descriptor")
    unknown = set(doc) - {
        "group",
        "version",
        "language",
        "repositories",
        "plugins",
        "formatting",
        "modules",
    }
    if unknown:
        raise ConfigError(f"Unknown top-level keys: {', '.join(sorted(unknown))}")

    policy = RootPolicy(
        group=_string(doc.get("group"), "group"),
        version=_string(doc.get("version"), "version", UNSPECIFIED_VERSION),
        plugins=apply_plugins(
            {str(k): str(v) for k, v in _mapping(doc.get("plugins"), "plugins").items()},
            root=True,
        ),
        formatting=_formatting(doc.get("formatting")),
    )
    defaults = {key: doc[key] for key in ("language", "repositories") if key in doc}

    modules_raw = _mapping(doc.get("modules"), "modules")
    if not modules_raw:
        raise ConfigError("modules must declare at least one module")
    modules = {
        str(name): _module(str(name), raw, root=root, policy=policy, defaults=defaults)
        for name, raw in modules_raw.items()
    }

    project = Project(root=root, policy=policy, modules=modules)
    project.validate()
    logger.debug("Loaded project %s with modules %s", policy.group, ", ".join(modules))
    return project


def load_project(path: Path) -> Project:
    """Load and validate the descriptor at ``path``."""
    path = Path(path).resolve()
    logger.debug("Reading project descriptor %s", path)
    return parse_project(_read_yaml(path), path.parent)
