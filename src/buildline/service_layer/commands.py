"""Module defining Commands."""

from dataclasses import dataclass

from buildline.domain.outcomes import Stage


@dataclass(frozen=True)
class Command:
    """Base class for all commands."""


@dataclass(frozen=True)
class BuildModules(Command):
    """Command to run the pipeline for some (or all) modules.

    An empty ``modules`` tuple selects every module of the project.
    """

    modules: tuple[str, ...] = ()
    until: Stage = Stage.PACKAGE
    upstream: bool = True
    load_into_docker: bool = False
    max_workers: int | None = None


@dataclass(frozen=True)
class FormatSources(Command):
    """Command to apply (or, with ``check``, verify) the root formatting policy."""

    check: bool = False


@dataclass(frozen=True)
class ResolveDependencies(Command):
    """Command to resolve the dependencies of one module, or all when ``module`` is None."""

    module: str | None = None


@dataclass(frozen=True)
class CheckDependencyUpdates(Command):
    """Command to compare dependency versions with the newest ones available."""

    modules: tuple[str, ...] = ()
    include_prereleases: bool = False


@dataclass(frozen=True)
class CleanProject(Command):
    """Command to delete every build output of the project."""
