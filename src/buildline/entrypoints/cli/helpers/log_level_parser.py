"""Parse ``-L NAME=LEVEL`` logger-level options.

Values may be repeated or comma/space separated (``-L httpx=INFO,docker=DEBUG``).
The network and container libraries buildline drives are chatty at INFO, so
they default to WARNING unless overridden.
"""

import logging
import re

import click

DEFAULT_LIB_LEVELS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "docker": logging.WARNING,
    "urllib3": logging.WARNING,
    "blib2to3": logging.WARNING,
}

_SEPARATORS = re.compile(r"[,\s]+")


def split_items(value: str | list[str] | tuple[str, ...]) -> list[str]:
    """Flatten one string or a sequence of strings into non-empty items."""
    values = [value] if isinstance(value, str) else list(value)
    return [item for v in values for item in _SEPARATORS.split(v) if item]


def parse_level(text: str) -> int:
    """Numeric level for a level name (``debug``, ``WARNING``...) or number.

    Raises:
        click.BadParameter: If ``text`` names no logging level.
    """
    text = text.strip()
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    if not isinstance(level, int):
        raise click.BadParameter(f"Invalid log level: {text}")
    return level


def parse_log_level(
    ctx: click.Context,  # pylint: disable=unused-argument
    param: click.Parameter | None,  # pylint: disable=unused-argument
    value: str | list[str] | tuple[str, ...],
) -> dict[str, int]:
    """Click callback turning NAME=LEVEL items into a ``{logger: level}`` dict.

    Starts from `DEFAULT_LIB_LEVELS`; later items win.

    Raises:
        click.BadParameter: If an item is not NAME=LEVEL or LEVEL is invalid.
    """
    levels = dict(DEFAULT_LIB_LEVELS)
    for item in split_items(value):
        name, sep, level_text = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"Expected NAME=LEVEL, got {item!r}")
        levels[name.strip()] = parse_level(level_text)
    return levels
