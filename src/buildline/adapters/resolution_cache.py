"""On-disk cache of repository and registry lookups.

Entries are small JSON documents addressed by ``(namespace, key)``. The cache
is shared by every module of a build (and by concurrent builds), so each write
goes to a temporary file that is then moved into place with ``os.replace``:
readers see either the old entry or the new one, never a torn file.

Layout: ``root/<namespace>/<sha256(key)[:2]>/<sha256(key)>.json``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ResolutionCache:
    """JSON key-value cache with atomic placement."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def get(self, namespace: str, key: str) -> Any | None:
        """Return the cached value or ``None`` when absent or unreadable."""
        path = self._path(namespace, key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            entry = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt cache entry %s", path)
            return None
        return entry.get("value")

    def put(self, namespace: str, key: str, value: Any) -> None:
        """Store ``value`` (JSON-serializable) under ``(namespace, key)``."""
        path = self._path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"key": key, "value": value}, sort_keys=True)
        with tempfile.NamedTemporaryFile(
            "w", dir=path.parent, delete=False, encoding="utf-8", suffix=".tmp"
        ) as tmp:
            tmp.write(payload)
            tmp_path = Path(tmp.name)
        os.replace(tmp_path, path)
        logger.debug("Cached %s/%s", namespace, key)

    def _path(self, namespace: str, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._root / namespace / digest[:2] / f"{digest}.json"


class MemoryResolutionCache(ResolutionCache):
    """Process-local cache with the same interface, for tests and dry runs."""

    def __init__(self) -> None:  # pylint: disable=super-init-not-called
        self._entries: dict[tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        raise AttributeError("in-memory cache has no root directory")

    def get(self, namespace: str, key: str) -> Any | None:
        with self._lock:
            value = self._entries.get((namespace, key))
        # return a copy so callers never mutate the cached object
        return json.loads(json.dumps(value)) if value is not None else None

    def put(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            self._entries[(namespace, key)] = json.loads(json.dumps(value))
