"""
Durable default selection.

The default selection answers two questions when a command omits them:
which channel to use, and which version of a channel to use. Selections
are keyed by blockchain name, so ``stable`` and ``itn`` share one entry
when they resolve to the same blockchain; setting a default again
overwrites.

Document (schema 1):

    {"schema_version": 1,
     "default_channel": "itn",
     "selections": {"itn": "1.2.0"}}

Schema 0 (older jorup) was ``{"default": "<channel>", "entries": [...]}``
where repeated ``--make-default`` calls could append duplicate entries for
the same channel. The upgrade collapses them, keeping the last one.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..errors import StateError
from ..utils import HomeLayout
from .migrations import SchemaMigrations
from .models import DefaultSelection
from .store import JsonStateFile

logger = logging.getLogger(__name__)


def _defaults_v0_to_v1(doc: Any) -> Dict[str, Any]:
    selections: Dict[str, str] = {}
    for entry in doc.get("entries") or []:
        selections[str(entry["channel"])] = str(entry["version"])
    return {
        "default_channel": doc.get("default"),
        "selections": selections,
    }


DEFAULTS_MIGRATIONS = SchemaMigrations("default selection")
DEFAULTS_MIGRATIONS.register(1, _defaults_v0_to_v1)


class DefaultRegistry:
    def __init__(self, layout: HomeLayout, lock_timeout: float = 10.0):
        self._file = JsonStateFile(
            layout.defaults_file,
            layout.lock_file("defaults"),
            DEFAULTS_MIGRATIONS,
            empty=lambda: {"default_channel": None, "selections": {}},
            lock_timeout=lock_timeout,
        )

    def get(self) -> DefaultSelection:
        try:
            return DefaultSelection.from_dict(self._file.read())
        except (KeyError, TypeError, ValueError) as exc:
            raise StateError(
                f"Default selection {self._file.path} is not recognized: {exc}"
            ) from exc

    def set_default(
        self,
        channel: str,
        version: Optional[str] = None,
        *,
        make_channel_default: bool = True,
    ) -> DefaultSelection:
        """
        Pin ``version`` for ``channel`` and optionally make ``channel`` the
        default channel. Idempotent.
        """
        def mutate(doc: Dict[str, Any]) -> None:
            selections = dict(doc.get("selections") or {})
            if version is not None:
                selections[channel] = version
            doc["selections"] = selections
            if make_channel_default:
                doc["default_channel"] = channel

        self._file.update(mutate)
        logger.info("Default for %s set to %s", channel, version or "latest")
        return self.get()


__all__ = ["DefaultRegistry", "DEFAULTS_MIGRATIONS"]
