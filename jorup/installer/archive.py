"""
Archive backends for release artifacts.

Release artifacts are published as ``.tar.gz`` on unix platforms and as
``.zip`` on Windows. A backend knows how to fetch, verify and unpack one
archive format; ``select_archive_backend`` picks one per platform id.
"""

from __future__ import annotations

import logging
import tarfile
from abc import ABC, abstractmethod
import zipfile
from pathlib import Path
from typing import List, Optional

from ..errors import IntegrityError, UnpackError
from ..fetch import HttpClient, ProgressFn
from ..hashing import verify_checksum
from ..platforms import is_windows_platform
from .unpack import TarUnpacker, ZipUnpacker

logger = logging.getLogger(__name__)


NODE_BINARY = "jormungandr"
CLI_BINARY = "jcli"


def node_binary_name(platform_id: str) -> str:
    if is_windows_platform(platform_id):
        return f"{NODE_BINARY}.exe"
    return NODE_BINARY


class ArchiveBackend(ABC):
    """
    Abstract base: fetch → verify → unpack.

    Subclasses provide ``suffix`` and ``_extract``.
    """

    suffix = ""

    def __init__(self, http: Optional[HttpClient] = None) -> None:
        self.http = http or HttpClient()

    def fetch(
        self,
        url: str,
        dest: Path,
        progress: Optional[ProgressFn] = None,
    ) -> Path:
        logger.info("Downloading %s", url)
        return self.http.download(url, dest, progress=progress)

    def verify(self, path: Path, checksum: str, url: str = "") -> str:
        """
        Check ``path`` against ``checksum``.

        Raises IntegrityError on mismatch; returns the computed checksum.
        """
        try:
            ok, actual = verify_checksum(path, checksum)
        except ValueError as exc:
            raise IntegrityError(url or str(path), checksum, f"<unusable: {exc}>") from exc
        if not ok:
            raise IntegrityError(url or str(path), checksum, actual)
        return actual

    def unpack(self, archive: Path, dest_dir: Path) -> List[str]:
        try:
            extracted = self._extract(str(archive), str(dest_dir))
        except (tarfile.TarError, zipfile.BadZipFile, EOFError) as exc:
            raise UnpackError(f"Cannot unpack {archive.name}: {exc}") from exc
        except OSError as exc:
            raise UnpackError(f"Cannot write release files to {dest_dir}: {exc}") from exc
        if not extracted:
            raise UnpackError(f"Archive {archive.name} contains no usable files")
        logger.debug("Unpacked %d files from %s", len(extracted), archive.name)
        return extracted

    @abstractmethod
    def _extract(self, archive: str, dest_dir: str) -> List[str]:
        """Unpack ``archive`` into ``dest_dir`` and return the member names."""


class TarArchiveBackend(ArchiveBackend):
    suffix = ".tar.gz"

    def _extract(self, archive: str, dest_dir: str) -> List[str]:
        return TarUnpacker(executable_names=(NODE_BINARY, CLI_BINARY)).extract(archive, dest_dir)


class ZipArchiveBackend(ArchiveBackend):
    suffix = ".zip"

    def _extract(self, archive: str, dest_dir: str) -> List[str]:
        names = (NODE_BINARY, CLI_BINARY, f"{NODE_BINARY}.exe", f"{CLI_BINARY}.exe")
        return ZipUnpacker(executable_names=names).extract(archive, dest_dir)


def select_archive_backend(
    platform_id: str,
    http: Optional[HttpClient] = None,
) -> ArchiveBackend:
    if is_windows_platform(platform_id):
        return ZipArchiveBackend(http)
    return TarArchiveBackend(http)


__all__ = [
    "NODE_BINARY",
    "node_binary_name",
    "ArchiveBackend",
    "TarArchiveBackend",
    "ZipArchiveBackend",
    "select_archive_backend",
]
