"""
Timestamp sources for the ledger.

The ledger never trusts caller timestamps. It asks a Clock.
Production uses SystemClock; tests and tools use ManualClock.
"""

import time
from threading import Lock
from typing import Protocol


class Clock(Protocol):
    """Anything that can produce a nanosecond timestamp."""

    def now_ns(self) -> int:
        ...


class SystemClock:
    """
    Wall-clock nanoseconds since the Unix epoch.

    Never goes backwards within one process: if the wall clock steps
    back, the previous value is repeated instead.
    """

    def __init__(self):
        self._last = 0
        self._lock = Lock()

    def now_ns(self) -> int:
        with self._lock:
            now = time.time_ns()
            if now < self._last:
                now = self._last
            self._last = now
            return now


class ManualClock:
    """
    Deterministic clock.

    Each call returns the current value, then advances by `step`.
    A step of 0 freezes time (every append gets the same timestamp).
    Timestamps start at 1: a stored step never carries 0.
    """

    def __init__(self, start: int = 1, step: int = 1):
        if start < 1:
            raise ValueError("ManualClock start must be >= 1")
        if step < 0:
            raise ValueError("ManualClock step must be >= 0")
        self._value = start
        self._step = step
        self._lock = Lock()

    def now_ns(self) -> int:
        with self._lock:
            value = self._value
            self._value += self._step
            return value

    def set(self, value: int) -> None:
        """Jump to an arbitrary time (may go backwards, to model skew)."""
        if value < 1:
            raise ValueError("timestamps must be >= 1")
        with self._lock:
            self._value = value
