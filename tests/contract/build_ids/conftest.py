"""Fixtures for build id contract tests."""

from collections.abc import Iterable

import pytest

from buildline.adapters.build_ids import SequentialBuildIds, UlidBuildIds
from buildline.interfaces.build_ids import BuildIdGenerator


@pytest.fixture(params=["ulid", "sequential"])
def build_ids(request: pytest.FixtureRequest) -> Iterable[BuildIdGenerator]:
    """Return a fresh generator for the requested backend."""

    match request.param:
        case "ulid":
            yield UlidBuildIds()
        case "sequential":
            yield SequentialBuildIds()
        case _:
            raise ValueError(f"unknown build id generator: {request.param}")
