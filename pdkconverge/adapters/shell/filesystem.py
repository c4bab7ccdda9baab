"""
Filesystem adapter — file and directory operations on the local disk.

The only writer of managed files. Backups are timestamped sibling
copies (``PATH.bak.YYYYMMDD_HHMMSS``) taken with metadata preserved.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from collections.abc import Sequence
from pathlib import Path

from pdkconverge.adapters.base import Filesystem

logger = logging.getLogger(__name__)


def backup_name(path: Path, stamp: str | None = None) -> Path:
    """First free ``PATH.bak.<stamp>`` sibling of ``path``."""
    ts = stamp or time.strftime("%Y%m%d_%H%M%S")
    candidate = path.with_name(f"{path.name}.bak.{ts}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak.{ts}.{counter}")
        counter += 1
    return candidate


class LocalFilesystem(Filesystem):
    """Real filesystem operations."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_executable(self, path: Path) -> bool:
        return path.is_file() and os.access(path, os.X_OK)

    def read(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def write(self, path: Path, content: str, mode: int | None = None) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if mode is not None:
            path.chmod(mode)
        logger.debug("Written %d bytes to %s", len(content), path)

    def remove(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
        else:
            return
        logger.debug("Removed %s", path)

    def mkdir(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def backup(self, path: Path) -> Path | None:
        if not path.exists():
            logger.debug("backup: path does not exist, skipping: %s", path)
            return None
        dest = backup_name(path)
        if path.is_dir():
            shutil.copytree(path, dest, symlinks=True)
        else:
            shutil.copy2(path, dest)
        logger.info("Backed up %s → %s", path, dest)
        return dest

    def search(self, roots: Sequence[Path], relative_marker: str) -> Path | None:
        for root in roots:
            if (root / relative_marker).is_file():
                logger.debug("Marker %s found under %s", relative_marker, root)
                return root
            logger.debug("Marker %s not under %s", relative_marker, root)
        return None
