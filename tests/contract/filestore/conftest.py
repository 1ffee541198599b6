"""Pytest fixtures for CAS filestore contract tests.

Provided fixtures
-----------------
- **store**: Parametrized backend factory returning a **fresh** `FileStore`
  per test: `"memory"` (`MemoryFileStore`) and `"local"` (`LocalFileStore`
  under a temporary directory).
- **arbitrary_bytes**: Small, deterministic byte sample.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from buildline.adapters.filestore.local import LocalFileStore
from buildline.adapters.filestore.memory import MemoryFileStore
from buildline.interfaces.filestore import FileStore


@pytest.fixture(params=["memory", "local"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> FileStore:
    """Return a fresh filestore instance for the requested backend."""

    match request.param:
        case "memory":
            return MemoryFileStore()
        case "local":
            return LocalFileStore(tmp_path / "cas")
        case _:
            raise ValueError(f"unknown store type: {request.param}")


@pytest.fixture
def arbitrary_bytes() -> bytes:
    """Deterministic sample payload for quick round-trip tests."""
    return b"The quick brown fox jumps over the lazy dog"
