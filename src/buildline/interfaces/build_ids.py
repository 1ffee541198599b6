"""Source of build ids.

A build id names the report of its build (``build/reports/build-<id>.json``),
so ids are fixed-width strings whose lexicographic order is the order the
builds were started in.
"""

import abc

# pylint: disable=too-few-public-methods

BUILD_ID_LENGTH = 26


class BuildIdGenerator(abc.ABC):
    """Hands out the id of each build as it starts."""

    @abc.abstractmethod
    def new_build_id(self) -> str:
        """Return a new id, greater than every id returned before."""
