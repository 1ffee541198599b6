"""Fixtures for package index contract tests.

Every backend is pre-loaded with the same contents (`CONTENTS`):

- ``"memory"``: `InMemoryPackageIndex` over the literal mapping,
- ``"simple"``: `SimpleIndexClient` talking to an httpx `MockTransport` that
  serves the mapping as a PEP 691 JSON simple index.
"""

from __future__ import annotations

import httpx
import pytest

from buildline.adapters.package_index import (
    SIMPLE_JSON,
    InMemoryPackageIndex,
    SimpleIndexClient,
)
from buildline.adapters.resolution_cache import MemoryResolutionCache
from buildline.domain.model import normalize_name
from buildline.interfaces.package_index import PackageIndex

REPOSITORY = "https://index.example.test/simple"

CONTENTS = {
    "fastapi": ["0.109.2", "0.110.0"],
    "typing-extensions": ["4.9.0", "4.10.0"],
}


def simple_index_handler(request: httpx.Request) -> httpx.Response:
    """Serve `CONTENTS` as ``/simple/<name>/`` JSON pages."""
    prefix = "/simple/"
    path = request.url.path
    if not path.startswith(prefix):
        return httpx.Response(404)
    name = path[len(prefix) :].strip("/")
    versions = {normalize_name(k): v for k, v in CONTENTS.items()}.get(name)
    if versions is None:
        return httpx.Response(404)
    return httpx.Response(
        200,
        json={"meta": {"api-version": "1.1"}, "name": name, "versions": versions},
        headers={"content-type": SIMPLE_JSON},
    )


@pytest.fixture(params=["memory", "simple"])
def index(request: pytest.FixtureRequest) -> PackageIndex:
    """Return a fresh package index for the requested backend."""

    match request.param:
        case "memory":
            return InMemoryPackageIndex({REPOSITORY: CONTENTS})
        case "simple":
            client = httpx.Client(transport=httpx.MockTransport(simple_index_handler))
            return SimpleIndexClient(MemoryResolutionCache(), client=client)
        case _:
            raise ValueError(f"unknown index type: {request.param}")


@pytest.fixture
def repository() -> str:
    return REPOSITORY
