"""
jorup.installer

Download, verify and unpack node releases into the jorup home.
"""

from .archive import (
    ArchiveBackend,
    TarArchiveBackend,
    ZipArchiveBackend,
    node_binary_name,
    select_archive_backend,
)
from .installer import Emitter, InstalledEntry, ReleaseInstaller, find_node_binary
from .unpack import TarUnpacker, ZipUnpacker

__all__ = [
    "ArchiveBackend",
    "TarArchiveBackend",
    "ZipArchiveBackend",
    "node_binary_name",
    "select_archive_backend",
    "Emitter",
    "InstalledEntry",
    "ReleaseInstaller",
    "find_node_binary",
    "TarUnpacker",
    "ZipUnpacker",
]
