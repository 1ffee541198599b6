"""Unit tests for stage, module and build outcomes."""

from __future__ import annotations

from pathlib import Path

from buildline.domain.errors import CompileError, TestFailure
from buildline.domain.outcomes import (
    BuildResult,
    ModuleOutcome,
    Stage,
    StageOutcome,
    StageStatus,
    TestReport,
)

# pylint: disable=magic-value-comparison


def test_module_stages_exclude_format():
    """Formatting belongs to the root policy, not to modules."""
    assert Stage.module_stages() == (
        Stage.RESOLVE,
        Stage.COMPILE,
        Stage.TEST,
        Stage.ASSEMBLE,
        Stage.PACKAGE,
    )


def test_only_failed_is_not_ok():
    """Skipped, disabled and no-source stages do not fail a build."""
    assert [s for s in StageStatus if not s.ok] == [StageStatus.FAILED]


class TestTestReport:
    """Counts reported by the test platform."""

    @staticmethod
    def test_passed_and_succeeded():
        report = TestReport(total=10, failures=0, errors=0, skipped=2)
        assert report.passed == 8
        assert report.succeeded

    @staticmethod
    def test_errors_fail_the_run():
        assert not TestReport(total=3, errors=1).succeeded

    @staticmethod
    def test_failure_message():
        error = TestFailure("server", TestReport(total=5, failures=2, errors=1))
        assert str(error) == "Tests of module 'server' failed: 2 failed, 1 errored, 2 passed."


class TestModuleOutcome:
    """Per-module outcome bookkeeping."""

    @staticmethod
    def test_skip_all_covers_every_module_stage():
        """A module skipped for an upstream failure is blocked, not failed."""
        outcome = ModuleOutcome("integration-tests")
        outcome.skip_all("upstream module failed")

        assert [s.stage for s in outcome.stages] == list(Stage.module_stages())
        assert {s.status for s in outcome.stages} == {StageStatus.SKIPPED}
        assert {s.detail for s in outcome.stages} == {"upstream module failed"}
        assert outcome.blocked
        assert outcome.failure is None
        assert not outcome.succeeded

    @staticmethod
    def test_failure_and_outcome_of():
        error = CompileError("server", ["src/a.py:1: invalid syntax"])
        outcome = ModuleOutcome(
            "server",
            [
                StageOutcome(Stage.RESOLVE, StageStatus.SUCCESS),
                StageOutcome(Stage.COMPILE, StageStatus.FAILED, "boom", error),
                StageOutcome(Stage.TEST, StageStatus.SKIPPED, "compile failed"),
            ],
        )

        assert not outcome.succeeded
        assert outcome.failure is not None
        assert outcome.failure.stage is Stage.COMPILE
        assert outcome.outcome_of(Stage.PACKAGE) is None


class TestBuildResult:
    """No partial success: everything must succeed."""

    @staticmethod
    def test_succeeds_when_policy_and_modules_succeed():
        server = ModuleOutcome("server", [StageOutcome(Stage.RESOLVE, StageStatus.SUCCESS)])
        policy = StageOutcome(Stage.FORMAT, StageStatus.SUCCESS)
        result = BuildResult("01", policy, {"server": server})
        assert result.succeeded
        assert result.failures() == []

    @staticmethod
    def test_policy_failure_fails_the_build():
        policy = StageOutcome(Stage.FORMAT, StageStatus.FAILED, "formatting violations")
        result = BuildResult("01", policy)

        assert not result.succeeded
        assert result.failures() == [(":", policy)]

    @staticmethod
    def test_to_dict():
        """The build report is plain JSON-ready data."""
        outcome = StageOutcome(
            Stage.ASSEMBLE,
            StageStatus.SUCCESS,
            "published",
            duration=0.12345,
            artifacts=(Path("build/libs/server-1.zip"),),
        )
        result = BuildResult("01", None, {"server": ModuleOutcome("server", [outcome])})

        assert result.to_dict() == {
            "build_id": "01",
            "succeeded": True,
            "policy": None,
            "modules": [
                {
                    "module": "server",
                    "succeeded": True,
                    "blocked": False,
                    "stages": [
                        {
                            "stage": "assemble",
                            "status": "success",
                            "detail": "published",
                            "error": None,
                            "duration": 0.123,
                            "artifacts": ["build/libs/server-1.zip"],
                        }
                    ],
                }
            ],
        }
