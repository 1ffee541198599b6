"""Load the application for a CLI command."""

from __future__ import annotations

from pathlib import Path

import click

from buildline.bootstrap import AppContainer, bootstrap
from buildline.config import ProjectFileNotFoundError
from buildline.domain.errors import ConfigError


def load_app(ctx: click.Context, *, offline: bool | None = None) -> AppContainer:
    """Bootstrap buildline for the project file chosen on the command line.

    The container is cached on the context, so nested invocations share it.

    Raises:
        click.ClickException: If the project file is missing or invalid.
    """
    obj = ctx.ensure_object(dict)
    if (app := obj.get("app")) is not None:
        return app
    project_file: Path | None = obj.get("project_file")
    try:
        app = bootstrap(project_file, offline=offline)
    except ProjectFileNotFoundError as e:
        raise click.ClickException(str(e)) from e
    except ConfigError as e:
        raise click.ClickException(f"Invalid project: {e}") from e
    obj["app"] = app
    return app
