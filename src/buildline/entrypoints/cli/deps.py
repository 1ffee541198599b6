"""Dependency commands: ``dependencies`` and ``dependency-updates``.

``--json`` output goes to stdout alone, so it can be piped to other tools.
"""

from __future__ import annotations

import json

import click

from buildline.config import OFFLINE_ENV
from buildline.domain.errors import BuildError
from buildline.service_layer import commands
from buildline.service_layer.updates import UpdateStatus

from .helpers import error, load_app, success, warn
from .helpers.reports import print_table, resolution_table, updates_table

offline_option = click.option(
    "--offline",
    is_flag=True,
    envvar=OFFLINE_ENV,
    show_envvar=True,
    help="Only use cached index data.",
)
json_option = click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")


@click.command()
@click.argument("module", required=False)
@offline_option
@json_option
@click.pass_context
def dependencies(ctx: click.Context, module: str | None, offline: bool, as_json: bool) -> None:
    """Resolve and show the dependencies of MODULE (default: every module).

    Project dependencies must have been built (their archives published)
    before they resolve.
    """
    app = load_app(ctx, offline=offline)
    try:
        resolutions = app.message_bus.handle(commands.ResolveDependencies(module=module))
    except BuildError as e:
        error(str(e))
        ctx.exit(1)

    if as_json:
        payload = {
            name: dict(r.to_dict(), fingerprint=r.fingerprint) for name, r in resolutions.items()
        }
        click.echo(json.dumps(payload, indent=2))
        return
    for resolution in resolutions.values():
        print_table(resolution_table(resolution), color=ctx.obj.get("color", True))


@click.command(name="dependency-updates")
@click.argument("modules", nargs=-1)
@click.option(
    "--include-prereleases",
    is_flag=True,
    help="Consider alpha, beta, release-candidate and dev versions.",
)
@offline_option
@json_option
@click.pass_context
def dependency_updates(  # pylint: disable=too-many-arguments, too-many-positional-arguments
    ctx: click.Context,
    modules: tuple[str, ...],
    include_prereleases: bool,
    offline: bool,
    as_json: bool,
) -> None:
    """Report dependencies of MODULES (default: all) with newer versions available."""
    app = load_app(ctx, offline=offline)
    cmd = commands.CheckDependencyUpdates(
        modules=modules, include_prereleases=include_prereleases
    )
    try:
        rows = app.message_bus.handle(cmd)
    except BuildError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps([row.to_dict() for row in rows], indent=2))
        return
    print_table(updates_table(rows), color=ctx.obj.get("color", True))
    outdated = [r for r in rows if r.status is UpdateStatus.OUTDATED]
    unresolved = [r for r in rows if r.status is UpdateStatus.UNRESOLVED]
    if unresolved:
        noun = "dependency" if len(unresolved) == 1 else "dependencies"
        warn(f"{len(unresolved)} {noun} could not be checked")
    if outdated:
        noun = "dependency has" if len(outdated) == 1 else "dependencies have"
        warn(f"{len(outdated)} {noun} newer versions")
    elif not unresolved:
        success("All dependencies are up to date")
