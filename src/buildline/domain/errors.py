"""Domain-layer error definitions."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .outcomes import TestReport

# ============================================================================
#                           General build errors
# ============================================================================


class BuildError(Exception):
    """Base class for every failure that halts a pipeline stage."""


# ============================================================================
#                           Configuration errors
# ============================================================================


class ConfigError(BuildError):
    """Raised when the project descriptor is missing, malformed or inconsistent."""


class PluginVersionError(ConfigError):
    """Raised when a descriptor requests a plugin version buildline does not provide."""

    def __init__(self, plugin_id: str, requested: str, available: str) -> None:
        super().__init__(
            f"Plugin '{plugin_id}' version {requested} was requested, "
            f"but only version {available} is available."
        )
        self.plugin_id = plugin_id
        self.requested = requested
        self.available = available


class DependencyCycleError(ConfigError):
    """Raised when project dependencies between modules form a cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        super().__init__("Module dependency cycle: " + " -> ".join(cycle))
        self.cycle = tuple(cycle)


# ============================================================================
#                              Stage errors
# ============================================================================


class FormattingViolation(BuildError):
    """Raised when sources fail (or cannot be normalized to) the uniform style."""

    def __init__(self, files: Sequence[str], reason: str = "formatting violations") -> None:
        listing = "\n".join(f"  {f}" for f in files)
        super().__init__(f"{reason} in {len(files)} file(s):\n{listing}")
        self.files = tuple(files)
        self.reason = reason


class CompileError(BuildError):
    """Raised when sources do not satisfy the declared language-level constraints."""

    def __init__(self, module: str, problems: Sequence[str]) -> None:
        listing = "\n".join(f"  {p}" for p in problems)
        super().__init__(f"Compilation of module '{module}' failed:\n{listing}")
        self.module = module
        self.problems = tuple(problems)


class TestFailure(BuildError):
    """Raised when any test of a module's test platform run fails."""

    __test__ = False  # not a pytest test class

    def __init__(self, module: str, report: TestReport) -> None:
        super().__init__(
            f"Tests of module '{module}' failed: {report.failures} failed, "
            f"{report.errors} errored, {report.passed} passed."
        )
        self.module = module
        self.report = report


class DependencyResolutionError(BuildError):
    """Raised when a declared dependency cannot be resolved to a concrete artifact."""

    def __init__(self, module: str, dependency: str, reason: str) -> None:
        super().__init__(
            f"Could not resolve '{dependency}' for module '{module}': {reason}"
        )
        self.module = module
        self.dependency = dependency
        self.reason = reason


class PackagingError(BuildError):
    """Raised when a deployable artifact cannot be assembled."""
