"""Service layer handlers."""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any

from buildline.domain.model import FormattingMode, Project
from buildline.domain.outcomes import BuildResult
from buildline.interfaces.artifact_repository import ArtifactRepository
from buildline.interfaces.build_ids import BuildIdGenerator
from buildline.interfaces.image_registry import ImageLoader
from buildline.interfaces.test_runner import TestRunner

from . import commands
from .compiler import Compiler
from .formatting import FormatReport, format_project
from .image import ImageBuilder
from .pipeline import BuildOptions, BuildServices, ModulePipeline
from .resolution import DependencyResolver, Resolution
from .scheduler import BuildScheduler
from .updates import DependencyUpdate, UpdateChecker

logger = logging.getLogger(__name__)

REPORTS_DIR = Path("build") / "reports"


def write_build_report(result: BuildResult, reports_dir: Path) -> Path:
    """Write ``result`` as ``build-<id>.json`` under ``reports_dir``."""
    reports_dir.mkdir(parents=True, exist_ok=True)
    path = reports_dir / f"build-{result.build_id}.json"
    path.write_text(json.dumps(result.to_dict(), indent=2) + "\n", encoding="utf-8")
    logger.debug("Wrote build report %s", path)
    return path


# ============================================================================
#                               Build Handlers
# ============================================================================


def build_modules(  # pylint: disable=too-many-arguments
    cmd: commands.BuildModules,
    project: Project,
    resolver: DependencyResolver,
    compiler: Compiler,
    test_runner: TestRunner,
    artifacts: ArtifactRepository,
    build_ids: BuildIdGenerator,
    image_builder: ImageBuilder | None = None,
    image_loader: ImageLoader | None = None,
) -> BuildResult:
    """Run the root policy and the selected module pipelines; write the build report."""

    options = BuildOptions(
        until=cmd.until,
        upstream=cmd.upstream,
        load_into_docker=cmd.load_into_docker,
        max_workers=cmd.max_workers,
    )
    requested = list(cmd.modules) or list(project.modules)
    selected = project.closure(requested) if options.upstream else requested

    services = BuildServices(
        resolver=resolver,
        compiler=compiler,
        test_runner=test_runner,
        artifacts=artifacts,
        image_builder=image_builder,
        image_loader=image_loader,
    )
    scheduler = BuildScheduler(
        project,
        ModulePipeline(project, services, options),
        build_ids,
        max_workers=options.max_workers,
    )
    result = scheduler.run(selected)
    write_build_report(result, project.root / REPORTS_DIR)
    if result.succeeded:
        logger.info("Build %s succeeded", result.build_id)
    else:
        logger.warning("Build %s failed", result.build_id)
    return result


def format_sources(cmd: commands.FormatSources, project: Project) -> FormatReport:
    """Apply or check the root formatting policy."""

    mode = FormattingMode.CHECK if cmd.check else None
    return format_project(project, mode)


def resolve_dependencies(
    cmd: commands.ResolveDependencies, project: Project, resolver: DependencyResolver
) -> dict[str, Resolution]:
    """Resolve dependencies without building; project archives are not copied."""

    names = [cmd.module] if cmd.module else project.topological_order()
    return {
        name: resolver.resolve(project.module(name), materialize=False) for name in names
    }


def check_dependency_updates(
    cmd: commands.CheckDependencyUpdates, project: Project, update_checker: UpdateChecker
) -> list[DependencyUpdate]:
    """Report dependencies with newer versions available."""

    return update_checker.check(
        project,
        list(cmd.modules) or None,
        include_prereleases=cmd.include_prereleases,
    )


def clean_project(cmd: commands.CleanProject, project: Project) -> list[Path]:
    """Delete module build directories and the root build directory."""

    del cmd
    removed: list[Path] = []
    for directory in [m.build_dir for m in project] + [project.root / "build"]:
        if directory.is_dir():
            shutil.rmtree(directory)
            removed.append(directory)
            logger.info("Removed %s", directory)
    return removed


COMMAND_HANDLERS: dict[type[commands.Command], Callable[..., Any]] = {
    commands.BuildModules: build_modules,
    commands.FormatSources: format_sources,
    commands.ResolveDependencies: resolve_dependencies,
    commands.CheckDependencyUpdates: check_dependency_updates,
    commands.CleanProject: clean_project,
}
