"""Rich tables for build results, resolutions and dependency updates."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from buildline.domain.outcomes import BuildResult, StageOutcome
    from buildline.service_layer.resolution import Resolution
    from buildline.service_layer.updates import DependencyUpdate

STATUS_STYLES = {
    "success": "green",
    "failed": "bold red",
    "skipped": "yellow",
    "disabled": "dim",
    "no-source": "dim",
    "up-to-date": "green",
    "outdated": "yellow",
    "exceeded": "magenta",
    "unresolved": "red",
}


def _styled(value: str) -> str:
    style = STATUS_STYLES.get(value)
    return f"[{style}]{value}[/]" if style else value


def _stage_row(owner: str, outcome: StageOutcome) -> list[str]:
    return [
        owner,
        outcome.stage.value,
        _styled(outcome.status.value),
        f"{outcome.duration:.2f}s" if outcome.duration else "",
        escape(outcome.detail),
    ]


def build_table(result: BuildResult) -> Table:
    """One row per executed stage, root policy first."""
    table = Table(title=f"Build {result.build_id}", title_justify="left")
    for column in ("Module", "Stage", "Status", "Time", "Detail"):
        table.add_column(column, no_wrap=column != "Detail")
    if result.policy is not None:
        table.add_row(*_stage_row(":", result.policy))
    for name, outcome in result.modules.items():
        for stage in outcome.stages:
            table.add_row(*_stage_row(name, stage))
    return table


def resolution_table(resolution: Resolution) -> Table:
    title = f"{resolution.module}"
    if resolution.platform:
        title += f" (platform {resolution.platform})"
    table = Table(title=title, title_justify="left")
    for column in ("Scope", "Name", "Version", "Source", "Import"):
        table.add_column(column)
    for dep in resolution.dependencies:
        table.add_row(dep.scope.value, dep.name, dep.version, dep.source, dep.import_name)
    return table


def updates_table(rows: list[DependencyUpdate]) -> Table:
    table = Table(title="Dependency updates", title_justify="left")
    for column in ("Module", "Dependency", "Scope", "Current", "Latest", "Status"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row.module,
            row.name,
            row.scope,
            row.current or "-",
            row.latest or "-",
            _styled(row.status.value),
        )
    return table


def print_table(table: Table, color: bool = True) -> None:
    """Print ``table`` to stdout."""
    Console(color_system="auto" if color else None).print(table)
