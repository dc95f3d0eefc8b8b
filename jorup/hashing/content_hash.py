"""
Content hashing utilities.

The goal:
    - compute a stable digest for a downloaded artifact
    - parse the checksum notation used by the release index
    - compare the two without loading large archives into memory

Checksums in the index are written ``"<algo>:<hexdigest>"``. A bare hex
digest is read as sha256.
"""

from __future__ import annotations

import hashlib
import hmac
from pathlib import Path
from typing import Tuple, Union


DEFAULT_ALGO = "sha256"


# ----------------------------------------------------------------------
# Internal primitives
# ----------------------------------------------------------------------

def _hash_bytes(data: bytes, algo: str = DEFAULT_ALGO) -> str:
    h = hashlib.new(algo)
    h.update(data)
    return h.hexdigest()


def _hash_file(path: Path, algo: str = DEFAULT_ALGO, chunk_size: int = 65536) -> str:
    """
    Hash a single file incrementally by reading in chunks.
    """
    h = hashlib.new(algo)
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def parse_checksum(checksum: str) -> Tuple[str, str]:
    """
    Split an index checksum into ``(algo, hexdigest)``.

    Raises ValueError for unknown algorithms or empty digests.
    """
    text = checksum.strip()
    if ":" in text:
        algo, digest = text.split(":", 1)
    else:
        algo, digest = DEFAULT_ALGO, text
    algo = algo.strip().lower()
    digest = digest.strip().lower()

    if algo not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported checksum algorithm: {algo!r}")
    if not digest:
        raise ValueError("Empty checksum digest")
    return algo, digest


def compute_content_hash(
    value: Union[Path, bytes],
    algo: str = DEFAULT_ALGO,
) -> str:
    """
    Compute the hex digest of raw bytes or of a file's content.
    """
    if isinstance(value, bytes):
        return _hash_bytes(value, algo=algo)
    return _hash_file(Path(value), algo=algo)


def verify_checksum(path: Path, checksum: str) -> Tuple[bool, str]:
    """
    Check a file against an index checksum.

    Returns
    -------
    (matches, actual)
        ``actual`` is formatted like the expected value ("algo:hex") so it
        can be reported verbatim.
    """
    algo, expected = parse_checksum(checksum)
    actual = compute_content_hash(Path(path), algo=algo)
    return hmac.compare_digest(actual, expected), f"{algo}:{actual}"


__all__ = [
    "DEFAULT_ALGO",
    "parse_checksum",
    "compute_content_hash",
    "verify_checksum",
]
