"""Configuration utilities for BUILDLINE.

This module centralizes small helpers and constants related to application
configuration: where the project descriptor lives, where the user-level cache
is, and whether the network may be used.
"""

import os
from pathlib import Path

from platformdirs import user_cache_dir

PROJECT_FILE_NAME = "buildline.yaml"

PROJECT_FILE_ENV = "BUILDLINE_PROJECT_FILE"  # pragma: no mutate
CACHE_DIR_ENV = "BUILDLINE_CACHE_DIR"  # pragma: no mutate
OFFLINE_ENV = "BUILDLINE_OFFLINE"  # pragma: no mutate

DEFAULT_REPOSITORY = "https://pypi.org/simple"
DEFAULT_BASE_IMAGE = "gcr.io/distroless/python3-debian12"

_TRUTHY = {"1", "true", "yes", "on"}


class ProjectFileNotFoundError(Exception):
    """Raised when no project descriptor can be found."""

    def __init__(self, start: Path) -> None:
        super().__init__(
            f"No {PROJECT_FILE_NAME} found in {start} or any parent directory. "
            f"Set {PROJECT_FILE_ENV} or pass --project-file."
        )
        self.start = start


def find_project_file(start: Path | None = None) -> Path:
    """Locate the project descriptor.

    `BUILDLINE_PROJECT_FILE` wins when set; otherwise the directory tree is
    walked upwards from ``start`` (default: the working directory).

    Raises:
        ProjectFileNotFoundError: If no descriptor exists.
    """
    if env_value := os.environ.get(PROJECT_FILE_ENV):
        path = Path(env_value).expanduser()
        if not path.is_file():
            raise ProjectFileNotFoundError(path)
        return path.resolve()

    start = (start or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / PROJECT_FILE_NAME
        if candidate.is_file():
            return candidate
    raise ProjectFileNotFoundError(start)


def get_cache_dir() -> Path:
    """Return the user-level cache directory shared by all builds."""
    if env_value := os.environ.get(CACHE_DIR_ENV):
        return Path(env_value).expanduser()
    return Path(user_cache_dir("buildline", appauthor=False))


def is_offline() -> bool:
    """Return True if `BUILDLINE_OFFLINE` is set to a truthy value."""
    return os.environ.get(OFFLINE_ENV, "").strip().lower() in _TRUTHY
