"""
Release installer - download, verify and unpack node releases.

Responsible for:
    - streaming the platform artifact into ``<home>/tmp``
    - verifying its checksum before anything is unpacked
    - unpacking into a staging directory beside the final install dir
    - swapping the staging directory into place
    - registering the result in the InstalledRegistry

The registry is only written after the release directory is complete, so
an interrupted install never leaves a registered but partial release.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..errors import InstallError, UnpackError
from ..fetch import HttpClient
from ..registry import InstalledRegistry, InstalledRelease
from ..resolver import ResolvedRelease
from ..utils import HomeLayout, cleanup_temp_dir, ensure_temp_dir, temp_file_path
from .archive import ArchiveBackend, node_binary_name, select_archive_backend

logger = logging.getLogger(__name__)


Emitter = Callable[[str, Dict[str, Any]], None]


def _safe_emit(emit: Optional[Emitter], kind: str, payload: Dict[str, Any]) -> None:
    """Guarded emit so a bad progress callback cannot break an install."""
    if emit is None:
        return
    try:
        emit(kind, payload)
    except Exception:
        logger.debug("Install event handler failed for %s", kind, exc_info=True)


def find_node_binary(install_dir: Path, platform_id: str) -> Optional[Path]:
    """
    Locate the node executable inside an unpacked release.

    Archives ship the binary either at the top level or inside a single
    release directory.
    """
    name = node_binary_name(platform_id)
    direct = Path(install_dir) / name
    if direct.is_file():
        return direct
    matches = sorted(p for p in Path(install_dir).rglob(name) if p.is_file())
    return matches[0] if matches else None


@dataclass(frozen=True)
class InstalledEntry:
    """One row of ``jorup node list``."""

    release: InstalledRelease
    orphaned: bool
    binary: Optional[Path]


class ReleaseInstaller:
    """
    High-level installer for resolved releases.

    Used by:
        - Jorup.install (``jorup node install``)
        - Jorup.run when the resolved release is missing
    """

    def __init__(
        self,
        layout: HomeLayout,
        registry: InstalledRegistry,
        platform_id: str,
        *,
        http: Optional[HttpClient] = None,
        backend: Optional[ArchiveBackend] = None,
    ) -> None:
        self.layout = layout
        self.registry = registry
        self.platform_id = platform_id
        self.backend = backend or select_archive_backend(platform_id, http)

    # ------------------------------------------------------------------
    # Public install API
    # ------------------------------------------------------------------

    def install(
        self,
        resolved: ResolvedRelease,
        emit: Optional[Emitter] = None,
    ) -> InstalledRelease:
        """
        Install ``resolved`` and return its registry entry.

        Re-installing an existing ``(channel, version)`` replaces the
        directory and leaves exactly one registry entry.

        Raises
        ------
        FetchError
            The artifact could not be downloaded.
        IntegrityError
            Checksum mismatch; the download is discarded.
        UnpackError / InstallError
            The archive could not be turned into a usable release.
        """
        release = resolved.release
        artifact = release.artifact_for(self.platform_id)
        if artifact is None:
            raise InstallError(
                f"Release {release.version} has no artifact for {self.platform_id}"
            )

        family = release.channel.value
        version = str(release.version)
        install_dir = self.layout.release_dir(family, version)
        key = f"{family}-{version}"

        self.layout.ensure()
        archive = temp_file_path(self.layout.tmp_dir, prefix=f"{key}_", suffix=self.backend.suffix)
        staging: Optional[Path] = None

        _safe_emit(emit, "install_start", {"release": key, "url": artifact.url})
        try:
            self.backend.fetch(
                artifact.url,
                archive,
                progress=lambda done, total: _safe_emit(
                    emit, "download_progress", {"release": key, "done": done, "total": total}
                ),
            )
            checksum = self.backend.verify(archive, artifact.checksum, artifact.url)
            _safe_emit(emit, "verified", {"release": key, "checksum": checksum})

            staging = ensure_temp_dir(self.layout.releases_dir, prefix=f".staging-{key}-")
            self.backend.unpack(archive, staging)
            if find_node_binary(staging, self.platform_id) is None:
                raise UnpackError(
                    f"Archive for {key} does not contain {node_binary_name(self.platform_id)}"
                )

            self._swap_into_place(staging, install_dir)
            staging = None
        except BaseException:
            logger.warning("Install of %s aborted; cleaning up", key)
            cleanup_temp_dir(staging)
            raise
        finally:
            cleanup_temp_dir(archive)

        record = InstalledRelease(
            channel=family,
            version=version,
            install_dir=str(install_dir),
            publish_date=release.publish_date.isoformat(),
            checksum=artifact.checksum,
        )
        self.registry.upsert(record)
        _safe_emit(emit, "install_end", {"release": key, "install_dir": str(install_dir)})
        logger.info("Installed %s into %s", key, install_dir)
        return record

    def list_installed(self) -> List[InstalledEntry]:
        """
        All registered releases, with orphaned entries flagged instead of
        raising.
        """
        entries: List[InstalledEntry] = []
        for rec in self.registry.list():
            binary = None
            if not self.registry.is_orphaned(rec):
                binary = find_node_binary(Path(rec.install_dir), self.platform_id)
            entries.append(InstalledEntry(release=rec, orphaned=binary is None, binary=binary))
        return entries

    def node_binary(self, installed: InstalledRelease) -> Path:
        binary = find_node_binary(Path(installed.install_dir), self.platform_id)
        if binary is None:
            raise InstallError(
                f"Release {installed.key} is registered but its node binary is "
                f"missing from {installed.install_dir}; reinstall it"
            )
        return binary

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _swap_into_place(self, staging: Path, install_dir: Path) -> None:
        """
        Move ``staging`` to ``install_dir``, replacing an existing copy.

        Directories cannot be replaced atomically when the target is
        non-empty, so the old copy is renamed aside first and removed
        only after the new one is in place.
        """
        old: Optional[Path] = None
        if install_dir.exists():
            old = ensure_temp_dir(self.layout.releases_dir, prefix=f".old-{install_dir.name}-")
            os.rmdir(old)
            os.replace(install_dir, old)
        try:
            os.replace(staging, install_dir)
        except OSError as exc:
            if old is not None:
                os.replace(old, install_dir)
            raise InstallError(f"Cannot move release into {install_dir}: {exc}") from exc
        if old is not None:
            shutil.rmtree(old, ignore_errors=True)


__all__ = ["Emitter", "ReleaseInstaller", "InstalledEntry", "find_node_binary"]
