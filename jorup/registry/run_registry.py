"""
File-backed run records, one file per channel.

A run record is durable evidence that a channel has a live managed node.
It is written once the process is confirmed alive and removed on
confirmed shutdown, on foreground exit, or when a reader finds the pid
dead (see ProcessController).

Schema 0 files are the older runner file format:

    {"pid": 1234, "rest_port": 8443, "jcli": "...", "jormungandr": "..."}
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from ..errors import StateError
from ..utils import HomeLayout
from .migrations import SchemaMigrations
from .models import RunRecord, RunStatus
from .store import JsonStateFile

logger = logging.getLogger(__name__)


def _run_v0_to_v1(doc: Any) -> Dict[str, Any]:
    rest_port = doc.get("rest_port")
    return {
        "channel": doc.get("channel"),
        "version": doc.get("version") or "unknown",
        "pid": int(doc["pid"]),
        "executable": doc.get("executable") or doc["jormungandr"],
        "control_endpoint": (
            f"http://127.0.0.1:{int(rest_port)}/api" if rest_port else None
        ),
        "daemon": True,
        "status": RunStatus.RUNNING.value,
    }


RUN_MIGRATIONS = SchemaMigrations("run record")
RUN_MIGRATIONS.register(1, _run_v0_to_v1)


class RunRegistry:
    """
    Registry of run records under ``<home>/runs``.
    """

    def __init__(self, layout: HomeLayout, lock_timeout: float = 10.0):
        self.layout = layout
        self.lock_timeout = lock_timeout

    def _file(self, channel: str) -> JsonStateFile:
        return JsonStateFile(
            self.layout.run_record_file(channel),
            self.layout.lock_file(f"run-{channel}"),
            RUN_MIGRATIONS,
            empty=dict,
            lock_timeout=self.lock_timeout,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, channel: str) -> Optional[RunRecord]:
        f = self._file(channel)
        if not f.path.is_file():
            return None
        doc = f.read()
        if doc.get("channel") is None:
            doc["channel"] = channel
        try:
            return RunRecord.from_dict(doc)
        except (KeyError, TypeError, ValueError) as exc:
            raise StateError(f"Run record {f.path} is not recognized: {exc}") from exc

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def create(self, record: RunRecord) -> RunRecord:
        """
        Persist ``record`` as the channel's run record, replacing any
        previous file. Liveness of a previous record is checked by the
        caller before launching.
        """
        def mutate(doc: Dict[str, Any]) -> None:
            doc.clear()
            doc.update(record.to_dict())

        self._file(record.channel).update(mutate)
        logger.info(
            "Recorded run for %s: pid %s (%s)",
            record.channel, record.pid, record.status.value,
        )
        return record

    def update_status(self, channel: str, status: RunStatus) -> Optional[RunRecord]:
        rec = self.get(channel)
        if rec is None:
            return None
        updated = replace(rec, status=status)
        return self.create(updated)

    def remove(self, channel: str) -> bool:
        removed = self._file(channel).delete()
        if removed:
            logger.info("Removed run record for %s", channel)
        return removed


__all__ = ["RunRegistry", "RUN_MIGRATIONS"]
