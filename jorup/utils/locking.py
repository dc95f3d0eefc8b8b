"""
Advisory file locks for jorup's durable state.

Several short-lived jorup invocations may race over the same registry
files. Each mutation is wrapped in ``FileLock`` so read-modify-write
sequences never interleave. A lock that cannot be acquired within the
timeout raises ``ResourceBusy`` instead of blocking forever.

POSIX uses ``fcntl.flock``; Windows uses ``msvcrt.locking`` on the first
byte of the lock file. Locks are not reentrant.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import IO, Optional

from ..errors import ResourceBusy

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


if os.name == "nt":
    import msvcrt

    def _try_lock(fh: IO) -> bool:
        try:
            fh.seek(0)
            msvcrt.locking(fh.fileno(), msvcrt.LK_NBLCK, 1)
            return True
        except OSError:
            return False

    def _unlock(fh: IO) -> None:
        fh.seek(0)
        msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _try_lock(fh: IO) -> bool:
        try:
            fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return True
        except BlockingIOError:
            return False

    def _unlock(fh: IO) -> None:
        fcntl.flock(fh, fcntl.LOCK_UN)


class FileLock:
    """
    Exclusive inter-process lock backed by a lock file.

    Usage:

        with FileLock(layout.lock_file("installed"), timeout=10):
            ... read, modify, atomically write ...
    """

    def __init__(self, path: Path, timeout: float = 10.0):
        self.path = Path(path)
        self.timeout = timeout
        self._fh: Optional[IO] = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(self.path, "a+")
        deadline = time.monotonic() + self.timeout
        while not _try_lock(fh):
            if time.monotonic() >= deadline:
                fh.close()
                raise ResourceBusy(str(self.path), self.timeout)
            time.sleep(_POLL_INTERVAL)
        self._fh = fh
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        if self._fh is None:
            return
        try:
            _unlock(self._fh)
        finally:
            self._fh.close()
            self._fh = None
            logger.debug("Released lock %s", self.path)

    @property
    def locked(self) -> bool:
        return self._fh is not None

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


__all__ = [
    "FileLock",
]
