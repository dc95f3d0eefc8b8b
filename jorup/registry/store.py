"""
File-backed JSON state document with locked read-modify-write.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Callable, Dict

from ..utils import FileLock, json_read, json_write
from .migrations import SchemaMigrations


class JsonStateFile:
    """
    One durable state document.

    ``read()`` never locks: writes are atomic renames, so a reader always
    sees a complete document. ``update()`` holds the lock across the whole
    read-modify-write so concurrent jorup invocations serialize.
    """

    def __init__(
        self,
        path: Path,
        lock_path: Path,
        migrations: SchemaMigrations,
        empty: Callable[[], Dict[str, Any]],
        lock_timeout: float = 10.0,
    ) -> None:
        self.path = Path(path)
        self.lock_path = Path(lock_path)
        self.migrations = migrations
        self.empty = empty
        self.lock_timeout = lock_timeout

    def read(self) -> Dict[str, Any]:
        raw = json_read(self.path)
        if raw is None:
            doc = self.empty()
            doc["schema_version"] = self.migrations.get_latest_version()
            return doc
        return self.migrations.apply(raw)

    def update(self, mutate: Callable[[Dict[str, Any]], Any]) -> Any:
        """
        Apply ``mutate`` to a copy of the document and persist it.

        ``mutate`` edits the dict in place and may return a value, which
        is passed back to the caller.
        """
        with FileLock(self.lock_path, timeout=self.lock_timeout):
            doc = copy.deepcopy(self.read())
            result = mutate(doc)
            doc["schema_version"] = self.migrations.get_latest_version()
            json_write(self.path, doc)
        return result

    def delete(self) -> bool:
        with FileLock(self.lock_path, timeout=self.lock_timeout):
            try:
                self.path.unlink()
                return True
            except FileNotFoundError:
                return False


__all__ = ["JsonStateFile"]
