"""Reproducible library archives.

The assemble stage zips a module's compiled classes directory. Entries are
sorted and carry a fixed timestamp and permissions, so unchanged sources
always produce a byte-identical archive (and therefore the same digest in the
artifact repository). The archive is importable as-is from ``PYTHONPATH``.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

logger = logging.getLogger(__name__)

# earliest timestamp a zip entry can carry, shifted one month like other
# reproducible-archive tools to dodge timezone underflow
FIXED_ZIP_DATE = (1980, 2, 1, 0, 0, 0)
FILE_MODE = 0o644


def archive_entries(source_dir: Path) -> list[tuple[str, Path]]:
    """Sorted ``(arcname, path)`` pairs for every regular file below ``source_dir``."""
    return sorted(
        (path.relative_to(source_dir).as_posix(), path)
        for path in source_dir.rglob("*")
        if path.is_file()
    )


def build_archive(source_dir: Path, dest: Path) -> Path:
    """Write a deterministic zip of ``source_dir`` to ``dest`` and return ``dest``."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    entries = archive_entries(source_dir)
    with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for arcname, path in entries:
            info = zipfile.ZipInfo(arcname, date_time=FIXED_ZIP_DATE)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = (FILE_MODE | 0o100000) << 16
            info.create_system = 3  # unix, so external_attr is honored
            zf.writestr(info, path.read_bytes())
    logger.debug("Archived %d file(s) into %s", len(entries), dest)
    return dest
