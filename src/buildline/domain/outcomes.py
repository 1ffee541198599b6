"""Results of running the pipeline: per stage, per module and per build."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import BuildError


class Stage(Enum):
    """Pipeline stages in execution order."""

    FORMAT = "format"
    RESOLVE = "resolve"
    COMPILE = "compile"
    TEST = "test"
    ASSEMBLE = "assemble"
    PACKAGE = "package"

    @classmethod
    def module_stages(cls) -> tuple[Stage, ...]:
        """Stages run for every module (formatting belongs to the root policy)."""
        return (cls.RESOLVE, cls.COMPILE, cls.TEST, cls.ASSEMBLE, cls.PACKAGE)


class StageStatus(Enum):
    """Outcome of a single stage."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISABLED = "disabled"
    NO_SOURCE = "no-source"

    @property
    def ok(self) -> bool:
        return self is not StageStatus.FAILED


@dataclass(frozen=True)
class TestReport:
    """Summary of a test platform run."""

    __test__ = False  # not a pytest test class

    total: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0
    report_path: Path | None = None
    output: str = ""

    @property
    def passed(self) -> int:
        return self.total - self.failures - self.errors - self.skipped

    @property
    def succeeded(self) -> bool:
        return self.failures == 0 and self.errors == 0


@dataclass(frozen=True)
class StageOutcome:
    """What happened to one stage of one module."""

    stage: Stage
    status: StageStatus
    detail: str = ""
    error: BuildError | None = None
    duration: float = 0.0
    artifacts: tuple[Path, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "status": self.status.value,
            "detail": self.detail,
            "error": str(self.error) if self.error else None,
            "duration": round(self.duration, 3),
            "artifacts": [str(a) for a in self.artifacts],
        }


@dataclass
class ModuleOutcome:
    """Stage outcomes of one module, in execution order.

    A blocked module never ran because an upstream module or the root policy
    failed; it has no failed stage of its own but did not succeed either.
    """

    module: str
    stages: list[StageOutcome] = field(default_factory=list)
    blocked: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.blocked and all(s.status.ok for s in self.stages)

    @property
    def failure(self) -> StageOutcome | None:
        return next((s for s in self.stages if s.status is StageStatus.FAILED), None)

    def outcome_of(self, stage: Stage) -> StageOutcome | None:
        return next((s for s in self.stages if s.stage is stage), None)

    def skip_all(self, reason: str) -> None:
        """Record every module stage as skipped and mark the module blocked."""
        self.blocked = True
        self.stages = [
            StageOutcome(stage, StageStatus.SKIPPED, reason)
            for stage in Stage.module_stages()
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "succeeded": self.succeeded,
            "blocked": self.blocked,
            "stages": [s.to_dict() for s in self.stages],
        }


@dataclass
class BuildResult:
    """Outcome of a whole pipeline run.

    There is no partial success: the build succeeded only if the root policy
    and every selected module succeeded.
    """

    build_id: str
    policy: StageOutcome | None = None
    modules: dict[str, ModuleOutcome] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        policy_ok = self.policy is None or self.policy.status.ok
        return policy_ok and all(m.succeeded for m in self.modules.values())

    def failures(self) -> list[tuple[str, StageOutcome]]:
        """``(owner, outcome)`` pairs for every failed stage; root is ``":"``."""
        found: list[tuple[str, StageOutcome]] = []
        if self.policy is not None and self.policy.status is StageStatus.FAILED:
            found.append((":", self.policy))
        for name, outcome in self.modules.items():
            if (failure := outcome.failure) is not None:
                found.append((name, failure))
        return found

    def to_dict(self) -> dict[str, Any]:
        return {
            "build_id": self.build_id,
            "succeeded": self.succeeded,
            "policy": self.policy.to_dict() if self.policy else None,
            "modules": [m.to_dict() for m in self.modules.values()],
        }
