"""Build commands: ``projects``, ``build``, ``format`` and ``clean``.

Human-oriented notices go to **stderr**; tables go to **stdout**. A failed
build exits with status 1 after printing which module and stage failed; no
partial success is reported.
"""

from __future__ import annotations

import click

from buildline.config import OFFLINE_ENV
from buildline.domain.errors import BuildError, FormattingViolation
from buildline.domain.model import Plugin
from buildline.domain.outcomes import Stage
from buildline.service_layer import commands

from .helpers import error, load_app, success, warn
from .helpers.hyperlinks import file_link
from .helpers.reports import build_table, print_table

STAGE_CHOICES = [stage.value for stage in Stage.module_stages()]


@click.command()
@click.pass_context
def projects(ctx: click.Context) -> None:
    """List the modules of the project in build order."""
    app = load_app(ctx)
    project = app.project
    click.echo(f"Root project '{project.policy.group}' ({project.policy.version})")
    plugins = sorted(p.value for p in project.policy.plugins)
    click.echo(f"  plugins: {', '.join(plugins) or '<none>'}")
    for name in project.topological_order():
        module = project.module(name)
        upstream = ", ".join(project.upstream(name))
        packaging = (
            f"image {module.container.reference}"
            if module.produces_image and module.container is not None
            else "packaging disabled" if not module.packaging_enabled else "library"
        )
        line = f"- {name} [{module.source_level}] {packaging}"
        if upstream:
            line += f" (depends on {upstream})"
        click.echo(line)


@click.command()
@click.argument("modules", nargs=-1)
@click.option(
    "--until",
    type=click.Choice(STAGE_CHOICES, case_sensitive=False),
    default=Stage.PACKAGE.value,
    show_default=True,
    help="Last stage to run for each module. Modules other selected modules "
    "depend on still run through assemble.",
)
@click.option(
    "--upstream/--no-upstream",
    default=True,
    show_default=True,
    help="Also build the modules the selected ones depend on.",
)
@click.option(
    "--offline",
    is_flag=True,
    envvar=OFFLINE_ENV,
    show_envvar=True,
    help="Only use cached index and registry data.",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of modules built concurrently.",
)
@click.option(
    "--docker",
    "load_into_docker",
    is_flag=True,
    help="Load built images into the local Docker daemon.",
)
@click.pass_context
def build(  # pylint: disable=too-many-arguments, too-many-positional-arguments
    ctx: click.Context,
    modules: tuple[str, ...],
    until: str,
    upstream: bool,
    offline: bool,
    max_workers: int | None,
    load_into_docker: bool,
) -> None:
    """Build MODULES (default: all) through the stage pipeline."""
    app = load_app(ctx, offline=offline)
    cmd = commands.BuildModules(
        modules=modules,
        until=Stage(until.lower()),
        upstream=upstream,
        load_into_docker=load_into_docker,
        max_workers=max_workers,
    )
    try:
        result = app.message_bus.handle(cmd)
    except BuildError as e:
        raise click.ClickException(str(e)) from e

    print_table(build_table(result), color=ctx.obj.get("color", True))
    report = app.project.root / "build" / "reports" / f"build-{result.build_id}.json"
    click.echo(f"Report: {file_link(report, app.project.root)}", err=True)

    if result.succeeded:
        success("BUILD SUCCESSFUL")
        return
    for owner, outcome in result.failures():
        error(f"{owner}:{outcome.stage.value} failed")
        if outcome.error is not None:
            click.echo(str(outcome.error), err=True)
    error("BUILD FAILED")
    ctx.exit(1)


@click.command(name="format")
@click.option(
    "--check",
    is_flag=True,
    help="Only report files that are not formatted; do not rewrite them.",
)
@click.pass_context
def format_command(ctx: click.Context, check: bool) -> None:
    """Apply (or check) the root formatting policy to every source and build script."""
    app = load_app(ctx)
    if not app.project.policy.has(Plugin.FORMATTING):
        warn(f"The '{Plugin.FORMATTING.value}' plugin is not applied; nothing to do.")
        return
    try:
        report = app.message_bus.handle(commands.FormatSources(check=check))
    except FormattingViolation as e:
        for path in e.files:
            click.echo(path)
        error(f"{e.reason}: {len(e.files)} file(s)")
        ctx.exit(1)
    for path in report.changed:
        click.echo(path)
    success(f"{report.checked} file(s) checked, {len(report.changed)} reformatted")


@click.command()
@click.pass_context
def clean(ctx: click.Context) -> None:
    """Delete every build directory of the project."""
    app = load_app(ctx)
    removed = app.message_bus.handle(commands.CleanProject())
    for path in removed:
        click.echo(path.relative_to(app.project.root).as_posix())
    success(f"Removed {len(removed)} build director{'y' if len(removed) == 1 else 'ies'}")
