"""
Safe archive unpacking for release downloads.

ZipUnpacker / TarUnpacker:
    - prevent directory traversal ("zip slip")
    - skip absolute paths and links pointing outside the destination
    - skip device nodes and FIFOs
    - preserve executable bits
"""

from __future__ import annotations

import os
import shutil
import stat
import tarfile
import zipfile
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple


def _safe_target(dest_dir: str, name: str) -> Optional[Tuple[str, str]]:
    """
    Map an archive member name to (absolute path, relative path) below
    ``dest_dir``. Returns None for names that would escape it.
    """
    if not name:
        return None
    name = name.replace("\\", "/")
    if name.startswith("/") or (len(name) > 1 and name[1] == ":"):
        return None

    normalized = os.path.normpath(name).replace("\\", "/")
    if normalized in (".", "") or normalized == ".." or normalized.startswith("../"):
        return None

    dest_path = os.path.abspath(os.path.join(dest_dir, normalized))
    if not dest_path.startswith(dest_dir + os.sep):
        return None
    return dest_path, os.path.relpath(dest_path, dest_dir).replace("\\", "/")


def _inside(dest_dir: str, path: str) -> bool:
    path = os.path.abspath(path)
    return path == dest_dir or path.startswith(dest_dir + os.sep)


def _make_executable(path: str) -> None:
    mode = os.stat(path).st_mode
    os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@dataclass
class ZipUnpacker:
    """
    Safe ZIP extraction helper.

    Parameters
    ----------
    executable_names: Iterable[str]
        Base names that are always marked executable after extraction.
        Unix permission bits stored in the archive are honoured as well.
    """

    executable_names: Iterable[str] = field(default_factory=tuple)

    def extract(self, zip_path: str, dest_dir: str) -> List[str]:
        """
        Extract a ZIP file into dest_dir with safety protections.

        Returns
        -------
        List[str]:
            List of *relative* extracted file paths.

        Raises
        ------
        zipfile.BadZipFile
        OSError / IOError
        """
        dest_dir = os.path.abspath(dest_dir)
        os.makedirs(dest_dir, exist_ok=True)
        executables = {n.lower() for n in self.executable_names}

        extracted: List[str] = []

        with zipfile.ZipFile(zip_path, "r") as zf:
            for member in zf.infolist():
                # Skip directory entries
                if member.is_dir():
                    continue

                target = _safe_target(dest_dir, member.filename)
                if target is None:
                    continue
                dest_path, rel = target

                unix_mode = member.external_attr >> 16
                if unix_mode and stat.S_ISLNK(unix_mode):
                    # Links are not recreated from zip archives
                    continue

                os.makedirs(os.path.dirname(dest_path), exist_ok=True)
                with zf.open(member, "r") as src, open(dest_path, "wb") as dst:
                    shutil.copyfileobj(src, dst)

                if unix_mode & 0o111 or os.path.basename(dest_path).lower() in executables:
                    _make_executable(dest_path)
                extracted.append(rel)

        return extracted


@dataclass
class TarUnpacker:
    """
    Safe tar(.gz) extraction helper.

    Regular files keep their permission bits (minus setuid/setgid).
    Symlinks and hard links are recreated only when their target stays
    inside ``dest_dir``.
    """

    executable_names: Iterable[str] = field(default_factory=tuple)

    def extract(self, tar_path: str, dest_dir: str) -> List[str]:
        """
        Extract a tar archive into dest_dir with safety protections.

        Returns
        -------
        List[str]:
            List of *relative* extracted file and link paths.

        Raises
        ------
        tarfile.TarError
        OSError / IOError
        """
        dest_dir = os.path.abspath(dest_dir)
        os.makedirs(dest_dir, exist_ok=True)
        executables = {n.lower() for n in self.executable_names}

        extracted: List[str] = []

        with tarfile.open(tar_path, "r:*") as tf:
            for member in tf.getmembers():
                target = _safe_target(dest_dir, member.name)
                if target is None:
                    continue
                dest_path, rel = target

                if member.isdir():
                    os.makedirs(dest_path, exist_ok=True)
                    continue

                if member.issym():
                    link_target = os.path.join(os.path.dirname(dest_path), member.linkname)
                    if os.path.isabs(member.linkname) or not _inside(dest_dir, link_target):
                        continue
                    os.makedirs(os.path.dirname(dest_path), exist_ok=True)
                    if os.path.lexists(dest_path):
                        os.unlink(dest_path)
                    os.symlink(member.linkname, dest_path)
                    extracted.append(rel)
                    continue

                if member.islnk():
                    source = _safe_target(dest_dir, member.linkname)
                    if source is None or not os.path.isfile(source[0]):
                        continue
                    os.makedirs(os.path.dirname(dest_path), exist_ok=True)
                    shutil.copy2(source[0], dest_path)
                    extracted.append(rel)
                    continue

                if not member.isfile():
                    # Devices, FIFOs
                    continue

                os.makedirs(os.path.dirname(dest_path), exist_ok=True)
                src = tf.extractfile(member)
                if src is None:
                    continue
                with src, open(dest_path, "wb") as dst:
                    shutil.copyfileobj(src, dst)

                os.chmod(dest_path, (member.mode & 0o777) | stat.S_IRUSR | stat.S_IWUSR)
                if os.path.basename(dest_path).lower() in executables:
                    _make_executable(dest_path)
                extracted.append(rel)

        return extracted


__all__ = ["ZipUnpacker", "TarUnpacker"]
