"""buildline CLI entry point.

Defines the top-level ``buildline`` command (via Click-Extra), its logging
options, and registers the subcommands.

Commands
- ``buildline projects``: list the modules of the project.
- ``buildline build``: run the root policy and the module pipelines.
- ``buildline format``: apply or check the root formatting policy.
- ``buildline dependencies``: show resolved dependencies.
- ``buildline dependency-updates``: report newer dependency versions.
- ``buildline clean``: delete build outputs.

Examples
    $ buildline build
    $ buildline build server --until test
    $ buildline -p path/to/buildline.yaml build integration-tests --no-upstream
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click
import click_extra as clickx
from platformdirs import user_log_dir

from buildline import __version__
from buildline.config import PROJECT_FILE_ENV
from buildline.logging import config_console_handler, config_flight_recorder, log_startup

from .build import build, clean, format_command, projects
from .deps import dependencies, dependency_updates
from .helpers import hyperlink
from .helpers.log_level_parser import DEFAULT_LIB_LEVELS, parse_log_level

if TYPE_CHECKING:
    from logging import Handler

logger = logging.getLogger(__name__)


HELP = """buildline command-line interface.

    buildline builds multi-module Python projects through a fixed pipeline:
    a root formatting policy, then resolve, compile, test, assemble and package
    stages for every module, with reproducible library archives and container
    images.
    """


EPILOG = "\b\n" + "\n".join(
    [
        f"{click.style('See Also:', fg='blue', bold=True, underline=True)}",
        "  Black : " + hyperlink("https://black.readthedocs.io/"),
        "  OCI   : " + hyperlink("https://github.com/opencontainers/image-spec"),
    ]
)


@clickx.extra_group(
    version=__version__,
    help=HELP,
    params=[
        clickx.ColorOption(show_envvar=True),
        clickx.TimerOption(show_envvar=True),
        clickx.ExtraVersionOption(),
    ],
    epilog=EPILOG,
)
@click.option(
    "--project-file",
    "-p",
    "project_file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    envvar=PROJECT_FILE_ENV,
    show_envvar=True,
    default=None,
    help="Project descriptor to use (default: nearest buildline.yaml upwards).",
)
@click.option(
    "--verbose",
    "-v",
    "verbose_count",
    count=True,
    help=(
        "Increase the default WARNING verbosity by one level "
        "for each additional repetition of the option."
    ),
    default=0,
)
@click.option(
    "--quiet",
    "-q",
    "quiet_count",
    count=True,
    help=(
        "Decrease the default WARNING verbosity by one level "
        "for each additional repetition of the option."
    ),
    default=0,
)
@click.option(
    "--debug/--no-debug",
    is_flag=True,
    help="Enable debug mode (extra diagnostics, threads and source locations).",
    default=False,
)
@click.option(
    "--log-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to log file (overrides default flight recorder path).",
    default=Path(user_log_dir("buildline", appauthor=False)) / "latest.log",
    envvar="BUILDLINE_LOG_PATH",
    show_default=True,
    show_envvar=True,
)
@click.option(
    "--flight-recorder-capacity",
    type=int,
    default=5000,
    hidden=True,
    envvar="BUILDLINE_FLIGHT_RECORDER_CAPACITY",
    show_envvar=True,
    help="Capacity of the flight recorder (in number of log records).",
)
@click.option(
    "--flight-recorder/--no-flight-recorder",
    "flight_recorder",
    is_flag=True,
    help=(
        "Keep the last N log records at DEBUG granularity (unaffected by -v/-q) "
        "and write them to --log-path when a WARNING/ERROR occurs (a failing "
        "stage, for instance), or on exit if --force-flush is set."
    ),
    default=True,
    show_envvar=True,
)
@click.option(
    "--force-flush/--no-force-flush",
    "force_flush_flight_recorder",
    is_flag=True,
    help="Always write the flight recorder buffer to --log-path on exit.",
    default=False,
    show_default=True,
    show_envvar=True,
)
@click.option(
    "-L",
    "--logger-level",
    "logger_levels",
    multiple=True,
    callback=parse_log_level,
    help=(
        "Set MINIMUM LEVEL for specific LOGGERS (NAME=LEVEL). Applies to both "
        "console and flight recorder. Repeatable (e.g. -L httpx=INFO "
        "-L docker=DEBUG) or via BUILDLINE_LOGGER_LEVELS (comma/space list)."
    ),
    default=tuple(
        f"{name}={logging.getLevelName(lvl)}" for name, lvl in DEFAULT_LIB_LEVELS.items()
    ),
    envvar="BUILDLINE_LOGGER_LEVELS",
    show_default=True,
    show_envvar=True,
)
@clickx.pass_context
def buildline(  # pylint: disable=too-many-arguments, too-many-locals, too-many-positional-arguments
    ctx: click.Context,
    project_file: Path | None,
    verbose_count: int,
    quiet_count: int,
    debug: bool,
    log_path: Path,
    flight_recorder_capacity: int,
    flight_recorder: bool,
    force_flush_flight_recorder: bool,
    logger_levels: dict[str, int],
) -> None:
    """buildline command-line interface."""

    ctx.ensure_object(dict)
    ctx.obj["project_file"] = project_file
    ctx.obj["color"] = ctx.color is not False

    # effective console verbosity; stage progress is INFO, so -v shows it
    level = logging.WARNING - (10 * verbose_count) + (10 * quiet_count)
    level = max(logging.DEBUG, min(logging.CRITICAL, level))

    handlers: list[Handler] = [
        config_console_handler(level=level, debug_mode=debug, color=ctx.obj["color"])
    ]
    if flight_recorder:
        handlers.append(
            config_flight_recorder(
                path=log_path,
                capacity=flight_recorder_capacity,
                flush_on_close=force_flush_flight_recorder,
            )
        )

    logging.basicConfig(
        level=logging.DEBUG,  # capture all levels; handlers filter
        handlers=handlers,
        force=True,
    )
    for name, lvl in logger_levels.items():
        logging.getLogger(name).setLevel(lvl)

    log_startup(
        logger,
        app_version=__version__,
        level=level,
        handlers=handlers,
        log_path=log_path,
        flight_recorder=flight_recorder,
        flight_capacity=flight_recorder_capacity if flight_recorder else None,
        force_flush_fr=force_flush_flight_recorder,
        logger_levels=logger_levels,
    )

    ctx.call_on_close(logging.shutdown)


buildline.add_command(projects)
buildline.add_command(build)
buildline.add_command(format_command)
buildline.add_command(dependencies)
buildline.add_command(dependency_updates)
buildline.add_command(clean)
