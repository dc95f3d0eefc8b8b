"""
Home directory layout.

Every durable artifact jorup owns lives under a single home directory so
that a user (or a test) can relocate the whole state with ``JORUP_HOME``:

    <home>/index.json                 cached release index
    <home>/index.meta.json            ETag / fetch time of the cache
    <home>/installed.json             installed-release registry
    <home>/defaults.json              default selection
    <home>/runs/<channel>.json        one run record per channel
    <home>/releases/<channel>-<ver>/  unpacked release
    <home>/channels/<channel>/        node storage, config, logs
    <home>/tmp/                       downloads in flight
    <home>/locks/                     advisory lock files
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path


_UNSAFE = re.compile(r"[^A-Za-z0-9_.+-]")


def safe_component(value: str) -> str:
    """
    Normalize an arbitrary name into a single safe path component.

    Example:
        "itn"         -> "itn"
        "../../etc"   -> ".._.._etc"
    """
    value = value.strip().strip("/").replace("/", "_").replace("\\", "_")
    return _UNSAFE.sub("_", value) or "_"


@dataclass(frozen=True)
class HomeLayout:
    """Deterministic paths below a jorup home directory."""

    root: Path

    @classmethod
    def at(cls, root) -> "HomeLayout":
        return cls(Path(root).expanduser().resolve())

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    @property
    def index_file(self) -> Path:
        return self.root / "index.json"

    @property
    def index_meta_file(self) -> Path:
        return self.root / "index.meta.json"

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    @property
    def installed_file(self) -> Path:
        return self.root / "installed.json"

    @property
    def defaults_file(self) -> Path:
        return self.root / "defaults.json"

    @property
    def runs_dir(self) -> Path:
        return self.root / "runs"

    def run_record_file(self, channel: str) -> Path:
        return self.runs_dir / f"{safe_component(channel)}.json"

    # ------------------------------------------------------------------
    # Releases and channels
    # ------------------------------------------------------------------

    @property
    def releases_dir(self) -> Path:
        return self.root / "releases"

    def release_dir(self, channel: str, version: str) -> Path:
        """
        Install directory for one release.

        Example:
            channel = "stable", version = "1.2.0"
            -> <home>/releases/stable-1.2.0
        """
        return self.releases_dir / f"{safe_component(channel)}-{safe_component(version)}"

    def channel_dir(self, channel: str) -> Path:
        return self.root / "channels" / safe_component(channel)

    # ------------------------------------------------------------------
    # Scratch
    # ------------------------------------------------------------------

    @property
    def tmp_dir(self) -> Path:
        return self.root / "tmp"

    @property
    def locks_dir(self) -> Path:
        return self.root / "locks"

    def lock_file(self, name: str) -> Path:
        return self.locks_dir / f"{safe_component(name)}.lock"

    def ensure(self) -> "HomeLayout":
        """Create the top-level directories; safe to call repeatedly."""
        for path in (
            self.root,
            self.runs_dir,
            self.releases_dir,
            self.tmp_dir,
            self.locks_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)
        return self


__all__ = [
    "safe_component",
    "HomeLayout",
]
