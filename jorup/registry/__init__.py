"""
jorup - Registry package.

This package provides:
    - Data model records (InstalledRelease, DefaultSelection, RunRecord)
    - File-backed registry implementations:
          * InstalledRegistry
          * DefaultRegistry
          * RunRegistry
    - SchemaMigrations for upgrading state written by older versions

The registries expose a stable logical interface for:
    - registering installed releases, defaults and live runs
    - retrieving existing records
    - listing items for the CLI
    - updating status or removing records

Every mutation is an atomic rename performed under an advisory file lock,
so concurrent jorup invocations never interleave partial writes.
"""

from .models import DefaultSelection, InstalledRelease, RunRecord, RunStatus
from .migrations import SchemaMigrations
from .installed_registry import InstalledRegistry
from .default_registry import DefaultRegistry
from .run_registry import RunRegistry

__all__ = [
    # Data model records
    "InstalledRelease",
    "DefaultSelection",
    "RunRecord",
    "RunStatus",

    # Schema upgrades
    "SchemaMigrations",

    # File-backed registries
    "InstalledRegistry",
    "DefaultRegistry",
    "RunRegistry",
]
