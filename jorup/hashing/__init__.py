"""
jorup.hashing

Checksum utilities for downloaded release artifacts.

This package provides:
- compute_content_hash: digest of bytes or a file, streamed
- parse_checksum / verify_checksum: index checksum notation
"""

from .content_hash import (
    DEFAULT_ALGO,
    compute_content_hash,
    parse_checksum,
    verify_checksum,
)

__all__ = [
    "DEFAULT_ALGO",
    "compute_content_hash",
    "parse_checksum",
    "verify_checksum",
]
