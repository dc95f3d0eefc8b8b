"""
Platform identification.

Release artifacts are keyed by a short platform id of the form
``<arch>-<os>``, e.g. ``x86_64-linux``, ``aarch64-darwin`` or
``x86_64-windows``.
"""

from __future__ import annotations

import platform
import sys
from typing import Optional


_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8": "aarch64",
}


def current_platform() -> str:
    arch = platform.machine().lower() or "unknown"
    arch = _ARCH_ALIASES.get(arch, arch)

    if sys.platform.startswith("win"):
        system = "windows"
    elif sys.platform == "darwin":
        system = "darwin"
    else:
        system = sys.platform.rstrip("0123456789") or "unknown"
    return f"{arch}-{system}"


def resolve_platform(override: Optional[str]) -> str:
    return override.strip().lower() if override else current_platform()


def is_windows_platform(platform_id: str) -> bool:
    return platform_id.endswith("-windows")


__all__ = [
    "current_platform",
    "resolve_platform",
    "is_windows_platform",
]
