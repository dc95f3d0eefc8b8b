"""
Time source used by retry loops and shutdown polling.

Components take a Clock instead of calling ``time`` directly so that tests
can substitute a virtual clock and never actually sleep.
"""

from __future__ import annotations

import time


class Clock:
    """Wall-clock implementation backed by the ``time`` module."""

    def time(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


SYSTEM_CLOCK = Clock()


__all__ = ["Clock", "SYSTEM_CLOCK"]
