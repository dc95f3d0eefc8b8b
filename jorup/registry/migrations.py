"""
Schema migrations for jorup's durable state documents.

Every state file carries a ``schema_version``. When a file written by an
older jorup is loaded, the registered upgrade steps are applied in order
until it reaches the latest version. Files newer than this build, or
files whose structure the steps do not recognize, raise StateError: they
are never rewritten behind the user's back.

Usage pattern:

    mgr = SchemaMigrations("defaults")
    mgr.register(version=1, upgrade=_defaults_v0_to_v1)
    doc = mgr.apply(raw_doc)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from ..errors import StateError

logger = logging.getLogger(__name__)

Upgrade = Callable[[Any], Dict[str, Any]]


class SchemaMigrations:
    """
    Registry and executor of document upgrades for one kind of state file.
    """

    def __init__(self, name: str):
        self.name = name
        # Mapping:
        #     target version -> upgrade(doc at version-1) -> doc at version
        self.migrations: Dict[int, Upgrade] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, version: int, upgrade: Upgrade) -> None:
        """
        Register the step that produces ``version`` from ``version - 1``.
        """
        if version in self.migrations:
            raise ValueError(f"Duplicate {self.name} migration to version {version}")
        self.migrations[version] = upgrade

    def get_latest_version(self) -> int:
        """
        Return the highest registered migration number, or 0 if none exist.
        """
        return max(self.migrations.keys(), default=0)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def version_of(self, doc: Any) -> int:
        if isinstance(doc, dict):
            version = doc.get("schema_version", 0)
            if isinstance(version, int) and version >= 0:
                return version
            raise StateError(f"{self.name}: invalid schema_version {version!r}")
        # Pre-versioned documents were bare lists or scalars.
        return 0

    def apply(self, doc: Any) -> Dict[str, Any]:
        """
        Upgrade ``doc`` to the latest version and return it.
        """
        latest = self.get_latest_version()
        current = self.version_of(doc)

        if current > latest:
            raise StateError(
                f"{self.name} state was written by a newer jorup "
                f"(schema {current}, supported {latest}); upgrade jorup"
            )

        while current < latest:
            step = self.migrations.get(current + 1)
            if step is None:
                raise StateError(
                    f"{self.name}: no migration from schema {current} to {current + 1}"
                )
            try:
                doc = step(doc)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise StateError(
                    f"{self.name} state (schema {current}) is not recognized: {exc}"
                ) from exc
            current += 1
            doc["schema_version"] = current
            logger.info("Upgraded %s state to schema %d", self.name, current)

        if not isinstance(doc, dict):
            raise StateError(f"{self.name} state must be a JSON object")
        return doc


__all__ = ["SchemaMigrations"]
