"""Build id generators."""

import itertools
import threading

from ulid import monotonic

from buildline.interfaces.build_ids import BUILD_ID_LENGTH, BuildIdGenerator

# pylint: disable=too-few-public-methods


class UlidBuildIds(BuildIdGenerator):
    """Monotonic ULIDs.

    A ULID starts with its creation time, so report files of builds run from
    several shells still list in the order the builds began.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def new_build_id(self) -> str:
        with self._lock:
            return str(monotonic.new())


class SequentialBuildIds(BuildIdGenerator):
    """Zero-padded counter, for reproducible report names in tests."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def new_build_id(self) -> str:
        with self._lock:
            return f"{next(self._counter):0{BUILD_ID_LENGTH}d}"
