"""
File-backed registry of installed releases.

Document (schema 1):

    {
      "schema_version": 1,
      "releases": [
        {"channel": "stable", "version": "1.2.0",
         "install_dir": "<home>/releases/stable-1.2.0",
         "publish_date": "2024-01-01", "checksum": "sha256:...",
         "installed_at": "..."}
      ]
    }

Entries are keyed by ``(channel, version)``; upserting the same key
replaces the entry, so repeated installs never duplicate.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import StateError
from ..utils import HomeLayout
from .migrations import SchemaMigrations
from .models import InstalledRelease
from .store import JsonStateFile

logger = logging.getLogger(__name__)


def _installed_v0_to_v1(doc: Any) -> Dict[str, Any]:
    # v0 was a bare list of entries.
    if isinstance(doc, list):
        return {"releases": [dict(e) for e in doc]}
    return {"releases": list(doc.get("releases") or [])}


INSTALLED_MIGRATIONS = SchemaMigrations("installed releases")
INSTALLED_MIGRATIONS.register(1, _installed_v0_to_v1)


class InstalledRegistry:
    """
    Durable set of releases unpacked under ``<home>/releases``.
    """

    def __init__(self, layout: HomeLayout, lock_timeout: float = 10.0):
        self.layout = layout
        self._file = JsonStateFile(
            layout.installed_file,
            layout.lock_file("installed"),
            INSTALLED_MIGRATIONS,
            empty=lambda: {"releases": []},
            lock_timeout=lock_timeout,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def list(self) -> List[InstalledRelease]:
        doc = self._file.read()
        try:
            return [InstalledRelease.from_dict(e) for e in doc.get("releases", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise StateError(
                f"Installed releases {self._file.path} are not recognized: {exc}"
            ) from exc

    def get(self, channel: str, version: str) -> Optional[InstalledRelease]:
        for rec in self.list():
            if rec.channel == channel and rec.version == version:
                return rec
        return None

    def get_present(self, channel: str, version: str) -> Optional[InstalledRelease]:
        """Like get(), but orphaned entries read as not installed."""
        rec = self.get(channel, version)
        if rec is None or self.is_orphaned(rec):
            return None
        return rec

    def list_present(self) -> List[InstalledRelease]:
        return [rec for rec in self.list() if not self.is_orphaned(rec)]

    @staticmethod
    def is_orphaned(rec: InstalledRelease) -> bool:
        """True when the install directory was removed behind our back."""
        orphaned = not Path(rec.install_dir).is_dir()
        if orphaned:
            logger.debug("Installed release %s has no directory %s", rec.key, rec.install_dir)
        return orphaned

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def upsert(self, release: InstalledRelease) -> InstalledRelease:
        """
        Record ``release``, replacing any entry with the same key.
        """
        def mutate(doc: Dict[str, Any]) -> None:
            entries = [
                e for e in doc.get("releases", [])
                if not (e.get("channel") == release.channel
                        and e.get("version") == release.version)
            ]
            entries.append(release.to_dict())
            entries.sort(key=lambda e: (e["channel"], e["version"]))
            doc["releases"] = entries

        self._file.update(mutate)
        logger.info("Registered installed release %s", release.key)
        return release

    def remove(self, channel: str, version: str) -> bool:
        def mutate(doc: Dict[str, Any]) -> bool:
            before = doc.get("releases", [])
            after = [
                e for e in before
                if not (e.get("channel") == channel and e.get("version") == version)
            ]
            doc["releases"] = after
            return len(after) != len(before)

        return self._file.update(mutate)


__all__ = ["InstalledRegistry", "INSTALLED_MIGRATIONS"]
