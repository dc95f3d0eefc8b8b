"""
Atomic JSON read/write helpers.

These functions guarantee:
- UTF-8 encoding
- deterministic indentation and key order
- write-to-temp + fsync + rename, so readers never observe a partial file
- directory creation for writes

Unlike a best-effort cache, jorup's durable state must not silently
disappear: malformed files raise ``StateError`` instead of reading as empty.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from ..errors import StateError


def json_read(path: Path) -> Optional[Any]:
    """
    Read and parse a JSON file.

    Parameters
    ----------
    path : Path
        Path to a JSON file.

    Returns
    -------
    Optional[Any]
        Parsed object, or None if the file does not exist.

    Raises
    ------
    StateError
        If the file exists but cannot be read or parsed.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        raise StateError(f"Cannot read state file {path}: {exc}") from exc


def json_write(path: Path, data: Any) -> None:
    """
    Atomically write JSON with deterministic formatting.

    The document is written to a sibling temporary file, flushed to disk
    and renamed over ``path``. On any failure the temporary file is removed
    and the previous content of ``path`` is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


__all__ = [
    "json_read",
    "json_write",
]
