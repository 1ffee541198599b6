"""Integration tests for the pytest subprocess runner.

These run a real interpreter on small generated test suites.
"""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from buildline.adapters.test_runner import PytestSubprocessRunner, parse_junit_report
from tests.fixtures.projects import write_tree

# pylint: disable=magic-value-comparison


def run(module_dir: Path, python_path=(), runner=None):
    return (runner or PytestSubprocessRunner(timeout=120)).run(
        test_dir=module_dir / "tests",
        cwd=module_dir,
        python_path=list(python_path),
        report_path=module_dir / "build" / "test-results" / "junit.xml",
    )


def test_counts_from_junit_report(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "tests/test_mixed.py": (
                "import pytest\n"
                "\n"
                "def test_ok():\n"
                "    pass\n"
                "\n"
                "def test_broken():\n"
                "    assert 1 == 2\n"
                "\n"
                "@pytest.mark.skip(reason='later')\n"
                "def test_later():\n"
                "    pass\n"
            ),
        },
    )

    report = run(tmp_path)

    assert (report.total, report.failures, report.errors, report.skipped) == (3, 1, 0, 1)
    assert not report.succeeded
    assert report.report_path.is_file()
    assert "test_broken" in report.output


def test_python_path_makes_sources_importable(tmp_path: Path):
    write_tree(
        tmp_path,
        {
            "classes/carsapi/__init__.py": "MAKES = ('Volvo', 'Saab')\n",
            "tests/test_makes.py": (
                "from carsapi import MAKES\n\ndef test_makes():\n    assert 'Saab' in MAKES\n"
            ),
        },
    )

    report = run(tmp_path, [tmp_path / "classes"])

    assert report.succeeded
    assert report.total == 1


def test_archives_on_python_path_are_importable(tmp_path: Path):
    """Upstream library archives (zip files) work as import path entries."""
    archive = tmp_path / "deps" / "server-1.zip"
    archive.parent.mkdir()
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("carsapi/__init__.py", "NAME = 'cars'\n")
    write_tree(
        tmp_path,
        {
            "tests/test_upstream.py": (
                "from carsapi import NAME\n\ndef test_name():\n    assert NAME == 'cars'\n"
            )
        },
    )

    assert run(tmp_path, [archive]).succeeded


def test_no_tests_collected(tmp_path: Path):
    (tmp_path / "tests").mkdir()
    report = run(tmp_path)
    assert report.total == 0
    assert report.succeeded


def test_usage_error_counts_as_an_error(tmp_path: Path):
    write_tree(tmp_path, {"tests/test_a.py": "def test_a():\n    pass\n"})
    runner = PytestSubprocessRunner(extra_args=["--definitely-not-a-pytest-flag"], timeout=120)

    report = run(tmp_path, runner=runner)

    assert report.errors == 1
    assert not report.succeeded


class TestParseJunitReport:
    """Summing JUnit XML reports."""

    @staticmethod
    def test_testsuites_are_summed(tmp_path: Path):
        path = tmp_path / "junit.xml"
        path.write_text(
            "<testsuites>"
            '<testsuite tests="3" failures="1" errors="0" skipped="1"/>'
            '<testsuite tests="2" failures="0" errors="1" skipped="0"/>'
            "</testsuites>",
            encoding="utf-8",
        )
        assert parse_junit_report(path) == (5, 1, 1, 1)

    @staticmethod
    @pytest.mark.parametrize("content", [None, "<testsuite", ""])
    def test_missing_or_unreadable(tmp_path: Path, content: str | None):
        path = tmp_path / "junit.xml"
        if content is not None:
            path.write_text(content, encoding="utf-8")
        assert parse_junit_report(path) == (0, 0, 0, 0)
