"""Unit tests for the Rich report tables."""

from __future__ import annotations

import io

from rich.console import Console
from rich.table import Table

from buildline.domain.model import Scope
from buildline.domain.outcomes import BuildResult, ModuleOutcome, Stage, StageOutcome, StageStatus
from buildline.entrypoints.cli.helpers.reports import (
    build_table,
    resolution_table,
    updates_table,
)
from buildline.service_layer.resolution import Resolution, ResolvedDependency
from buildline.service_layer.updates import DependencyUpdate, UpdateStatus

# pylint: disable=magic-value-comparison


def render(table: Table) -> str:
    console = Console(file=io.StringIO(), width=160, color_system=None)
    console.print(table)
    return console.file.getvalue()


def test_build_table_lists_policy_then_modules():
    result = BuildResult(
        "01HBUILD",
        StageOutcome(Stage.FORMAT, StageStatus.SUCCESS, "checked 3 file(s)", duration=0.5),
        {
            "server": ModuleOutcome(
                "server", [StageOutcome(Stage.TEST, StageStatus.FAILED, "1 failed [x]")]
            ),
        },
    )
    table = build_table(result)
    text = render(table)

    assert table.row_count == 2
    assert "Build 01HBUILD" in text
    assert "0.50s" in text
    # details are escaped, not parsed as Rich markup
    assert "1 failed [x]" in text


def test_resolution_table_title_includes_platform():
    resolution = Resolution(
        "server",
        "web:2.5.4",
        (ResolvedDependency("pyyaml", "6.0.1", Scope.RUNTIME, "declared", "yaml"),),
    )
    text = render(resolution_table(resolution))
    assert "server (platform web:2.5.4)" in text
    assert "yaml" in text


def test_updates_table_dashes_for_unknown_versions():
    rows = [DependencyUpdate("server", "respx", "test", None, None, UpdateStatus.UNRESOLVED)]
    text = render(updates_table(rows))
    assert "respx" in text
    assert "unresolved" in text
    assert " - " in text
