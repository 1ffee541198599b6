"""Per-module pipeline: resolve -> compile -> test -> assemble -> package.

Stages of one module run strictly in order. The first failing stage halts the
module and every later stage is recorded as skipped, so a module whose tests
fail never reaches the package stage and never produces an image. The image
of an earlier build is removed before the stages start.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from buildline.domain.errors import BuildError, TestFailure
from buildline.domain.model import Module, Project
from buildline.domain.outcomes import ModuleOutcome, Stage, StageOutcome, StageStatus
from buildline.interfaces.artifact_repository import ArtifactRepository
from buildline.interfaces.image_registry import ImageLoader
from buildline.interfaces.test_runner import TestRunner

from .archive import build_archive
from .compiler import CompileResult, Compiler
from .image import ImageBuilder
from .resolution import LOCK_FILE, DependencyResolver, Resolution

logger = logging.getLogger(__name__)

STAGE_ORDER = Stage.module_stages()


@dataclass(frozen=True)
class BuildOptions:
    """Knobs of a build invocation.

    Attributes:
        until: Last stage to run for each module.
        upstream: Also build the upstream modules of the selected ones.
        load_into_docker: Load built images into the local Docker daemon.
        max_workers: Upper bound on modules built concurrently.
    """

    until: Stage = Stage.PACKAGE
    upstream: bool = True
    load_into_docker: bool = False
    max_workers: int | None = None

    def last_stage(self, feeds_downstream: bool = False) -> Stage:
        """Last stage to run for a module.

        A module whose archive a downstream module of this build resolves
        runs at least through assemble, whatever ``until`` says.
        """
        if feeds_downstream and STAGE_ORDER.index(self.until) < STAGE_ORDER.index(Stage.ASSEMBLE):
            return Stage.ASSEMBLE
        return self.until


@dataclass
class BuildServices:
    """Collaborators the stages delegate to."""

    resolver: DependencyResolver
    compiler: Compiler
    test_runner: TestRunner
    artifacts: ArtifactRepository
    image_builder: ImageBuilder | None = None
    image_loader: ImageLoader | None = None


@dataclass
class _ModuleState:
    """Values passed from one stage to the next."""

    resolution: Resolution | None = None
    compiled: CompileResult | None = None
    archive: Path | None = None
    artifacts: list[Path] = field(default_factory=list)


class ModulePipeline:
    """Run the stages of a single module.

    Args:
        project: The loaded project.
        services: Stage collaborators.
        options: Build options.
    """

    def __init__(self, project: Project, services: BuildServices, options: BuildOptions) -> None:
        self._project = project
        self._services = services
        self._options = options
        self._handlers: dict[Stage, Callable[[Module, _ModuleState], tuple[StageStatus, str]]] = {
            Stage.RESOLVE: self._resolve,
            Stage.COMPILE: self._compile,
            Stage.TEST: self._test,
            Stage.ASSEMBLE: self._assemble,
            Stage.PACKAGE: self._package,
        }

    def run(self, module: Module, feeds_downstream: bool = False) -> ModuleOutcome:
        """Run every selected stage of ``module`` and return the outcomes.

        Stage failures (`BuildError`) are captured in the outcome; anything
        else propagates.

        Args:
            module: The module to build.
            feeds_downstream: A downstream module of this build resolves the
                archive of ``module``, so assemble must run.
        """
        outcome = ModuleOutcome(module.name)
        state = _ModuleState()
        failed: Stage | None = None
        last = STAGE_ORDER.index(self._options.last_stage(feeds_downstream))
        _remove_stale_image(module)

        for stage in STAGE_ORDER[: last + 1]:
            if failed is not None:
                outcome.stages.append(
                    StageOutcome(stage, StageStatus.SKIPPED, f"{failed.value} failed")
                )
                continue

            logger.info("> %s:%s", module.name, stage.value)
            state.artifacts = []
            started = time.monotonic()
            try:
                status, detail = self._handlers[stage](module, state)
            except BuildError as e:
                elapsed = time.monotonic() - started
                logger.error("%s:%s FAILED: %s", module.name, stage.value, e)
                outcome.stages.append(
                    StageOutcome(stage, StageStatus.FAILED, str(e).splitlines()[0], e, elapsed)
                )
                failed = stage
                continue
            elapsed = time.monotonic() - started
            logger.debug("%s:%s %s in %.2fs", module.name, stage.value, status.value, elapsed)
            outcome.stages.append(
                StageOutcome(stage, status, detail, None, elapsed, tuple(state.artifacts))
            )
        return outcome

    # --- Stages ---

    def _resolve(self, module: Module, state: _ModuleState) -> tuple[StageStatus, str]:
        state.resolution = self._services.resolver.resolve(module)
        lock = state.resolution.write_lock(module.build_dir / LOCK_FILE)
        state.artifacts.append(lock)
        count = len(state.resolution.dependencies)
        return StageStatus.SUCCESS, f"{count} dependenc{'y' if count == 1 else 'ies'}"

    def _compile(self, module: Module, state: _ModuleState) -> tuple[StageStatus, str]:
        assert state.resolution is not None
        state.compiled = self._services.compiler.compile_module(module, state.resolution)
        if not state.compiled.has_sources:
            return StageStatus.NO_SOURCE, "no sources"
        state.artifacts.append(state.compiled.classes_dir)
        return (
            StageStatus.SUCCESS,
            f"{len(state.compiled.main_files)} main, {len(state.compiled.test_files)} test",
        )

    def _test(self, module: Module, state: _ModuleState) -> tuple[StageStatus, str]:
        assert state.resolution is not None and state.compiled is not None
        if not state.compiled.test_files:
            return StageStatus.NO_SOURCE, "no test sources"
        python_path = [state.compiled.classes_dir, *state.resolution.project_archives()]
        report = self._services.test_runner.run(
            test_dir=module.test_dir,
            cwd=module.path,
            python_path=python_path,
            report_path=module.build_dir / "test-results" / "junit.xml",
        )
        if report.report_path is not None and report.report_path.exists():
            state.artifacts.append(report.report_path)
        if not report.succeeded:
            if report.output:
                logger.debug("Test output of %s:\n%s", module.name, report.output)
            raise TestFailure(module.name, report)
        if report.total == 0:
            return StageStatus.NO_SOURCE, "no tests collected"
        return StageStatus.SUCCESS, f"{report.passed} passed, {report.skipped} skipped"

    def _assemble(self, module: Module, state: _ModuleState) -> tuple[StageStatus, str]:
        assert state.compiled is not None
        if not state.compiled.main_files:
            return StageStatus.NO_SOURCE, "no main sources"
        dest = module.build_dir / "libs" / f"{module.name}-{module.version}.zip"
        state.archive = build_archive(state.compiled.classes_dir, dest)
        record = self._services.artifacts.publish(
            module.group, module.name, module.version, state.archive
        )
        state.artifacts.append(state.archive)
        return StageStatus.SUCCESS, f"published {record.coordinate}"

    def _package(self, module: Module, state: _ModuleState) -> tuple[StageStatus, str]:
        if not module.packaging_enabled:
            return StageStatus.DISABLED, "packaging disabled"
        if not module.produces_image:
            return StageStatus.DISABLED, "no container image declared"
        assert state.resolution is not None and state.compiled is not None
        if self._services.image_builder is None:
            raise RuntimeError(
                "Module declares a container image but no image builder is configured"
            )
        image = self._services.image_builder.build(
            module,
            state.compiled.classes_dir,
            state.resolution,
            module.build_dir / "image",
        )
        state.artifacts.append(image.tarball)
        detail = image.reference
        if self._options.load_into_docker and self._services.image_loader is not None:
            tags = self._services.image_loader.load(image.tarball)
            detail += f" (loaded as {', '.join(tags)})" if tags else " (loaded)"
        return StageStatus.SUCCESS, detail


def _remove_stale_image(module: Module) -> None:
    image_dir = module.build_dir / "image"
    if image_dir.exists():
        logger.debug("Removing image of an earlier build: %s", image_dir)
        shutil.rmtree(image_dir)
