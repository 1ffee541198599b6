"""Compile stage: language-level checks for main and test sources.

Every source is parsed with the grammar of the module's *source* level
(``ast.parse(feature_version=...)``) and compiled to bytecode in memory, which
also catches errors the parser accepts (``return`` outside a function...).
The running interpreter must be at least the module's *target* level.

Main sources may only import what is visible at compile time: importing a
runtime-scoped or test-scoped dependency is a compile error, just like a
runtime-only jar is missing from a compile classpath.
"""

from __future__ import annotations

import ast
import logging
import shutil
import sys
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from buildline.domain.errors import CompileError
from buildline.domain.model import LanguageLevel, Module, Scope

from .resolution import Resolution

logger = logging.getLogger(__name__)

MINIMUM_LEVEL = LanguageLevel(3, 7)
IGNORED_NAMES = ("__pycache__", "*.pyc", "*.pyo")


def iter_sources(directory: Path) -> list[Path]:
    """Sorted Python files under ``directory`` (empty if it does not exist)."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*.py") if "__pycache__" not in p.parts)


def check_source(
    path: Path, level: LanguageLevel, display: str
) -> tuple[ast.Module | None, list[str]]:
    """Parse and compile one file at ``level``.

    Returns:
        The parsed tree (``None`` on failure) and the problems found.
    """
    try:
        source = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        return None, [f"{display}: not valid UTF-8 ({e.reason})"]
    try:
        tree = ast.parse(source, filename=display, feature_version=level.as_tuple())
        compile(tree, display, "exec", dont_inherit=True)
    except SyntaxError as e:
        line = f":{e.lineno}" if e.lineno else ""
        return None, [f"{display}{line}: {e.msg} (language level {level})"]
    return tree, []


def imported_top_levels(tree: ast.Module) -> Iterable[tuple[str, int]]:
    """Yield ``(top_level_name, lineno)`` for each absolute import in ``tree``."""
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield alias.name.split(".")[0], node.lineno
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            yield node.module.split(".")[0], node.lineno


@dataclass
class CompileResult:
    """Outputs of the compile stage."""

    classes_dir: Path
    main_files: list[Path] = field(default_factory=list)
    test_files: list[Path] = field(default_factory=list)

    @property
    def has_sources(self) -> bool:
        return bool(self.main_files or self.test_files)


class Compiler:
    """Check sources and lay out the compiled classes directory."""

    def __init__(self, interpreter: tuple[int, int] | None = None) -> None:
        self._interpreter = interpreter or sys.version_info[:2]

    def compile_module(self, module: Module, resolution: Resolution) -> CompileResult:
        """Compile ``module``'s main and test sources.

        Raises:
            CompileError: With one entry per offending file/line.
        """
        if module.source_level < MINIMUM_LEVEL:
            raise CompileError(
                module.name, [f"language level {module.source_level} is older than {MINIMUM_LEVEL}"]
            )
        if self._interpreter < module.target_level.as_tuple():
            running = ".".join(str(p) for p in self._interpreter)
            raise CompileError(
                module.name,
                [
                    f"target level {module.target_level} needs Python "
                    f">= {module.target_level}, running {running}"
                ],
            )

        forbidden = {
            dep.import_name: dep
            for dep in resolution.in_scopes(Scope.RUNTIME, Scope.TEST)
            if not dep.project
        }

        result = CompileResult(classes_dir=module.build_dir / "classes")
        problems: list[str] = []
        result.main_files = iter_sources(module.main_dir)
        result.test_files = iter_sources(module.test_dir)

        for path in result.main_files:
            display = path.relative_to(module.path).as_posix()
            tree, found = check_source(path, module.source_level, display)
            problems.extend(found)
            if tree is None:
                continue
            for name, lineno in imported_top_levels(tree):
                if (dep := forbidden.get(name)) is not None:
                    problems.append(
                        f"{display}:{lineno}: imports '{name}' from {dep.scope.value}-scoped "
                        f"dependency '{dep.name}', which is not visible to main sources"
                    )
        for path in result.test_files:
            display = path.relative_to(module.path).as_posix()
            problems.extend(check_source(path, module.source_level, display)[1])

        if problems:
            raise CompileError(module.name, problems)

        if result.classes_dir.exists():
            shutil.rmtree(result.classes_dir)
        if module.main_dir.is_dir():
            shutil.copytree(
                module.main_dir,
                result.classes_dir,
                ignore=shutil.ignore_patterns(*IGNORED_NAMES),
            )
        logger.info(
            "Compiled %s: %d main, %d test source(s) at language level %s",
            module.name,
            len(result.main_files),
            len(result.test_files),
            module.source_level,
        )
        return result
