"""Root formatting policy: one style for every source and build-script file.

Python sources go through autoflake (unused imports) and then black. Build
scripts (the YAML descriptors) must parse and are normalized for trailing
whitespace and final newlines. Both formatters are idempotent: formatting
already formatted text returns it unchanged, and the stage verifies that by
formatting every result a second time.
"""

from __future__ import annotations

import abc
import fnmatch
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import autoflake
import black
import yaml

from buildline.domain.errors import FormattingViolation
from buildline.domain.model import FormattingMode, FormattingPolicy, LanguageLevel, Project

logger = logging.getLogger(__name__)


class UnformattableSource(ValueError):
    """The formatter cannot make sense of a file (usually a syntax error)."""


# ============================================================================
#                               Formatters
# ============================================================================


class SourceFormatter(abc.ABC):
    """Turns file contents into their canonical form."""

    @abc.abstractmethod
    def format(self, text: str, path: Path) -> str:
        """Return the canonical form of ``text``.

        Raises:
            UnformattableSource: If ``text`` cannot be normalized.
        """


class PythonFormatter(SourceFormatter):
    """autoflake + black.

    Args:
        line_length: Maximum line length for black.
        target: Lowest language level the sources must keep supporting.
        remove_unused_imports: Whether to drop unused imports first. Imports
            in ``__init__.py`` files are kept, since they usually re-export.
    """

    def __init__(
        self,
        line_length: int = 88,
        target: LanguageLevel | None = None,
        remove_unused_imports: bool = True,
    ) -> None:
        versions = set()
        if target is not None:
            version = getattr(black.TargetVersion, f"PY{target.major}{target.minor}", None)
            if version is not None:
                versions.add(version)
        self._mode = black.Mode(line_length=line_length, target_versions=versions)
        self._remove_unused_imports = remove_unused_imports

    def format(self, text: str, path: Path) -> str:
        if self._remove_unused_imports:
            text = autoflake.fix_code(
                text,
                remove_all_unused_imports=True,
                ignore_init_module_imports=path.name == "__init__.py",
            )
        try:
            return black.format_str(text, mode=self._mode)
        except black.InvalidInput as e:
            raise UnformattableSource(str(e)) from e


class BuildScriptFormatter(SourceFormatter):
    """YAML build scripts: must parse; no trailing whitespace; one final newline."""

    def format(self, text: str, path: Path) -> str:
        try:
            yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise UnformattableSource(f"invalid YAML: {e}") from e
        lines = [line.rstrip() for line in text.replace("\r\n", "\n").split("\n")]
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(lines) + "\n" if lines else ""


# ============================================================================
#                              File discovery
# ============================================================================


def _excluded(relative: Path, exclude: tuple[str, ...]) -> bool:
    for part in relative.parts[:-1]:
        if part.startswith(".") or any(fnmatch.fnmatch(part, pattern) for pattern in exclude):
            return True
    return False


def discover(root: Path, patterns: tuple[str, ...], exclude: tuple[str, ...]) -> list[Path]:
    """Return the sorted files under ``root`` matching any of ``patterns``."""
    found: set[Path] = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            if path.is_file() and not _excluded(path.relative_to(root), exclude):
                found.add(path)
    return sorted(found)


# ============================================================================
#                                  Stage
# ============================================================================


@dataclass
class FormatReport:
    """What the formatting pass looked at and what it changed (or would change)."""

    checked: int = 0
    changed: list[str] = field(default_factory=list)


def _targets(root: Path, policy: FormattingPolicy, lowest: LanguageLevel | None) -> Iterator[
    tuple[Path, SourceFormatter]
]:
    python = PythonFormatter(
        line_length=policy.line_length,
        target=lowest,
        remove_unused_imports=policy.remove_unused_imports,
    )
    scripts = BuildScriptFormatter()
    for path in discover(root, policy.python_targets, policy.exclude):
        yield path, python
    for path in discover(root, policy.build_script_targets, policy.exclude):
        yield path, scripts


def format_project(project: Project, mode: FormattingMode | None = None) -> FormatReport:
    """Apply (or check) the root formatting policy over the whole project.

    Args:
        project: The project whose files are formatted.
        mode: Overrides the policy's mode when given.

    Returns:
        FormatReport: Number of files checked and the relative paths changed
        (apply mode) or needing changes (check mode).

    Raises:
        FormattingViolation: If a file cannot be normalized, if formatting is
            not stable, or, in check mode, if any file is not formatted.
    """
    policy = project.policy.formatting
    mode = mode or policy.mode
    report = FormatReport()
    unformattable: list[str] = []
    unstable: list[str] = []

    for path, formatter in _targets(project.root, policy, project.lowest_language_level()):
        relative = path.relative_to(project.root).as_posix()
        report.checked += 1
        try:
            original = path.read_text(encoding="utf-8")
            formatted = formatter.format(original, path)
            second = formatter.format(formatted, path)
        except (UnformattableSource, UnicodeDecodeError) as e:
            logger.debug("Cannot format %s: %s", relative, e)
            unformattable.append(f"{relative}: {e}")
            continue
        if second != formatted:
            unstable.append(relative)
            continue
        if formatted == original:
            continue
        report.changed.append(relative)
        if mode is FormattingMode.APPLY:
            path.write_text(formatted, encoding="utf-8")
            logger.info("Formatted %s", relative)

    if unformattable:
        raise FormattingViolation(unformattable, "sources that cannot be normalized")
    if unstable:
        raise FormattingViolation(unstable, "unstable formatting")
    if mode is FormattingMode.CHECK and report.changed:
        raise FormattingViolation(report.changed, "formatting violations")
    logger.info("Formatting: %d file(s) checked, %d changed", report.checked, len(report.changed))
    return report
