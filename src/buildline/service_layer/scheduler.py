"""Build scheduling across modules.

The root formatting policy runs first; if it fails no module is built. Modules
then run concurrently in a thread pool as the dependency graph permits: a
module starts once every selected upstream module has finished successfully,
and is skipped entirely if one of them failed or was itself skipped. A module
that a selected downstream module depends on always runs through assemble, so
the downstream module resolves the archive built in this run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from buildline.domain.errors import BuildError
from buildline.domain.model import Plugin, Project
from buildline.domain.outcomes import BuildResult, ModuleOutcome, Stage, StageOutcome, StageStatus
from buildline.interfaces.build_ids import BuildIdGenerator

from .formatting import FormatReport, format_project
from .pipeline import ModulePipeline

logger = logging.getLogger(__name__)

UPSTREAM_FAILED = "upstream module failed"
POLICY_FAILED = "root formatting policy failed"


class BuildScheduler:
    """Run the root policy, then the module pipelines in dependency order.

    Args:
        project: The loaded project.
        pipeline: Runs the stages of one module.
        build_ids: Source of build ids.
        max_workers: Upper bound on modules built at the same time.
        formatter: Root formatting stage; replaceable for tests.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        project: Project,
        pipeline: ModulePipeline,
        build_ids: BuildIdGenerator,
        max_workers: int | None = None,
        formatter: Callable[[Project], FormatReport] = format_project,
    ) -> None:
        self._project = project
        self._pipeline = pipeline
        self._build_ids = build_ids
        self._max_workers = max_workers
        self._formatter = formatter

    def run(self, selected: list[str]) -> BuildResult:
        """Build ``selected`` (module names) and return the combined result.

        Modules appear in the result in topological order, whatever order
        they finished in.

        Raises:
            ConfigError: If a selected module does not exist.
            RuntimeError: If the scheduler cannot make progress.
        """
        for name in selected:
            self._project.module(name)
        wanted = set(selected)
        order = [name for name in self._project.topological_order() if name in wanted]

        result = BuildResult(build_id=self._build_ids.new_build_id())
        logger.info("Build %s: %s", result.build_id, ", ".join(order) or "<no modules>")

        result.policy = self._run_policy()
        if not result.policy.status.ok:
            for name in order:
                outcome = ModuleOutcome(name)
                outcome.skip_all(POLICY_FAILED)
                result.modules[name] = outcome
            return result

        outcomes = self._run_modules(order)
        result.modules = {name: outcomes[name] for name in order}
        return result

    # --- Internal Helpers ---

    def _run_policy(self) -> StageOutcome:
        if not self._project.policy.has(Plugin.FORMATTING):
            return StageOutcome(Stage.FORMAT, StageStatus.DISABLED, "formatting plugin not applied")
        logger.info("> :%s", Stage.FORMAT.value)
        started = time.monotonic()
        try:
            report = self._formatter(self._project)
        except BuildError as e:
            logger.error(":%s FAILED: %s", Stage.FORMAT.value, e)
            return StageOutcome(
                Stage.FORMAT,
                StageStatus.FAILED,
                str(e).splitlines()[0],
                e,
                time.monotonic() - started,
            )
        if report.checked == 0:
            return StageOutcome(Stage.FORMAT, StageStatus.NO_SOURCE, "no files matched")
        return StageOutcome(
            Stage.FORMAT,
            StageStatus.SUCCESS,
            f"{report.checked} checked, {len(report.changed)} changed",
            duration=time.monotonic() - started,
        )

    def _run_modules(self, order: list[str]) -> dict[str, ModuleOutcome]:
        wanted = set(order)
        # modules whose archive a selected downstream module resolves
        feeders = {u for name in order for u in self._project.upstream(name) if u in wanted}
        outcomes: dict[str, ModuleOutcome] = {}
        pending = list(order)
        running: dict[Future[ModuleOutcome], str] = {}

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="buildline"
        ) as pool:
            while pending or running:
                progressed = False
                for name in list(pending):
                    upstream = [u for u in self._project.upstream(name) if u in wanted]
                    if any(u in outcomes and not outcomes[u].succeeded for u in upstream):
                        logger.warning("Skipping %s: %s", name, UPSTREAM_FAILED)
                        outcome = ModuleOutcome(name)
                        outcome.skip_all(UPSTREAM_FAILED)
                        outcomes[name] = outcome
                    elif all(u in outcomes for u in upstream):
                        module = self._project.module(name)
                        future = pool.submit(self._pipeline.run, module, name in feeders)
                        running[future] = name
                    else:
                        continue
                    pending.remove(name)
                    progressed = True

                if not running:
                    if pending and not progressed:
                        raise RuntimeError(f"Cannot schedule modules: {', '.join(pending)}")
                    continue

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    name = running.pop(future)
                    outcomes[name] = future.result()
        return outcomes
