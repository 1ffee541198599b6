"""pytest test platform, run in a subprocess.

Each module's tests run in a fresh interpreter so that modules stay isolated
from each other and from buildline itself. The import path is controlled
through ``PYTHONPATH``; results are read back from the JUnit XML report.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from pathlib import Path

from buildline.domain.outcomes import TestReport
from buildline.interfaces.test_runner import TestRunner

logger = logging.getLogger(__name__)

# pytest exit codes
EXIT_OK = 0
EXIT_TESTS_FAILED = 1
EXIT_NO_TESTS = 5


def parse_junit_report(path: Path) -> tuple[int, int, int, int]:
    """Return ``(total, failures, errors, skipped)`` summed over all test suites.

    A missing or unreadable report counts as zero tests.
    """
    try:
        root = ET.parse(path).getroot()
    except (FileNotFoundError, ET.ParseError):
        return (0, 0, 0, 0)
    suites = [root] if root.tag == "testsuite" else root.findall("testsuite")
    totals = [0, 0, 0, 0]
    for suite in suites:
        for i, attr in enumerate(("tests", "failures", "errors", "skipped")):
            totals[i] += int(suite.get(attr, "0") or 0)
    return (totals[0], totals[1], totals[2], totals[3])


class PytestSubprocessRunner(TestRunner):
    """Run pytest with ``sys.executable -m pytest``.

    Args:
        python: Interpreter used to run the tests; defaults to the current one.
        extra_args: Additional pytest arguments appended to every run.
        timeout: Optional timeout in seconds for a whole run.
    """

    def __init__(
        self,
        python: str | None = None,
        extra_args: Sequence[str] = (),
        timeout: float | None = None,
    ) -> None:
        self._python = python or sys.executable
        self._extra_args = tuple(extra_args)
        self._timeout = timeout

    def run(
        self,
        *,
        test_dir: Path,
        cwd: Path,
        python_path: Sequence[Path],
        report_path: Path,
    ) -> TestReport:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.unlink(missing_ok=True)
        cmd = [
            self._python,
            "-m",
            "pytest",
            str(test_dir),
            "-p",
            "no:cacheprovider",
            f"--junitxml={report_path}",
            f"--rootdir={cwd}",
            "-q",
            *self._extra_args,
        ]
        env = os.environ.copy()
        entries = [str(p) for p in python_path]
        if inherited := env.get("PYTHONPATH"):
            entries.append(inherited)
        env["PYTHONPATH"] = os.pathsep.join(entries)
        env["PYTHONDONTWRITEBYTECODE"] = "1"

        logger.debug("Running %s (PYTHONPATH=%s)", " ".join(cmd), env["PYTHONPATH"])
        proc = subprocess.run(  # pylint: disable=subprocess-run-check
            cmd,
            cwd=cwd,
            env=env,
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )
        output = proc.stdout + proc.stderr
        logger.debug("pytest exited with %s", proc.returncode)

        if proc.returncode == EXIT_NO_TESTS:
            return TestReport(report_path=report_path, output=output)

        total, failures, errors, skipped = parse_junit_report(report_path)
        if proc.returncode not in (EXIT_OK, EXIT_TESTS_FAILED) and errors == 0:
            # interrupted, internal or usage error: nothing trustworthy ran
            errors = 1
            total = max(total, 1)
        return TestReport(
            total=total,
            failures=failures,
            errors=errors,
            skipped=skipped,
            report_path=report_path,
            output=output,
        )
