"""
Temporary file and directory utilities.

Downloads and unpacking stage their data below ``<home>/tmp`` (or next to
the final destination) so the last step can be an ``os.replace`` on the
same filesystem.

Cleanup is best-effort: a leftover staging directory is harmless because
nothing registers it.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def ensure_temp_dir(parent: Path, prefix: str = "jorup_") -> Path:
    """
    Create and return a fresh temporary directory under ``parent``.

    Caller is responsible for invoking cleanup_temp_dir() when finished.
    """
    parent = Path(parent)
    parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent)))


def temp_file_path(parent: Path, prefix: str = "jorup_", suffix: str = "") -> Path:
    """
    Reserve a unique temporary file path under ``parent``.

    The file is created empty so the name cannot be claimed twice.
    """
    parent = Path(parent)
    parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=str(parent))
    os.close(fd)
    return Path(name)


def cleanup_temp_dir(path: Optional[Path]) -> None:
    """
    Remove a temporary directory (or file) and all its contents.

    Does nothing when ``path`` is None or already gone.
    """
    if not path:
        return

    path = Path(path)
    try:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
    except OSError as exc:
        logger.warning("Could not remove temporary path %s: %s", path, exc)


__all__ = [
    "ensure_temp_dir",
    "temp_file_path",
    "cleanup_temp_dir",
]
