"""Project-local artifact repository.

Archives are stored once in a `LocalFileStore` (content addressed); a JSON
index maps ``group:name:version`` to the archive digest. Modules building in
parallel publish concurrently, so index updates are serialized by a lock and
written with ``os.replace``.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from dataclasses import asdict
from pathlib import Path

from buildline.interfaces.artifact_repository import (
    ArtifactNotFound,
    ArtifactRecord,
    ArtifactRepository,
)
from buildline.interfaces.filestore import FileStore

from .filestore.local import LocalFileStore

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"


class LocalArtifactRepository(ArtifactRepository):
    """Artifact repository rooted in a directory (``build/repository`` by default)."""

    def __init__(self, root: Path, filestore: FileStore | None = None) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._filestore = filestore or LocalFileStore(self._root / "blobs")
        self._lock = threading.Lock()

    def publish(self, group: str, name: str, version: str, archive: Path) -> ArtifactRecord:
        with archive.open("rb") as f:
            stats = self._filestore.store(f)
        record = ArtifactRecord(
            group=group,
            name=name,
            version=version,
            sha256=stats.sha256,
            size_bytes=stats.size_bytes,
            filename=archive.name,
        )
        with self._lock:
            index = self._read_index()
            index[record.coordinate] = asdict(record)
            self._write_index(index)
        logger.info("Published %s (%s)", record.coordinate, record.sha256[:12])
        return record

    def locate(self, group: str, name: str, version: str) -> ArtifactRecord:
        coordinate = f"{group}:{name}:{version}"
        with self._lock:
            entry = self._read_index().get(coordinate)
        if entry is None or not self._filestore.exists(entry["sha256"]):
            raise ArtifactNotFound(coordinate)
        return ArtifactRecord(**entry)

    def materialize(self, record: ArtifactRecord, dest_dir: Path) -> Path:
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / record.filename
        with self._filestore.open_read(record.sha256) as src, tempfile.NamedTemporaryFile(
            dir=dest_dir, delete=False
        ) as tmp:
            shutil.copyfileobj(src, tmp)
            tmp_path = Path(tmp.name)
        os.replace(tmp_path, dest)
        return dest

    # --- Internal Helpers ---

    def _read_index(self) -> dict[str, dict]:
        path = self._root / INDEX_FILE
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}

    def _write_index(self, index: dict[str, dict]) -> None:
        path = self._root / INDEX_FILE
        with tempfile.NamedTemporaryFile(
            "w", dir=self._root, delete=False, encoding="utf-8", suffix=".tmp"
        ) as tmp:
            json.dump(index, tmp, indent=2, sort_keys=True)
            tmp_path = Path(tmp.name)
        os.replace(tmp_path, path)
