"""Time sources used by circuit breakers and storage adapters."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Time source protocol swappable for deterministic tests."""

    def time(self) -> int:
        """Return current epoch time in whole seconds."""

    def time_ms(self) -> int:
        """Return current epoch time in milliseconds."""

    def monotonic(self) -> float:
        """Return a monotonic reading in seconds for measuring durations."""

    def sleep(self, seconds: float) -> None:
        """Block for ``seconds``."""


class SystemClock:
    """Clock backed by the ``time`` module."""

    def time(self) -> int:
        return int(time.time())

    def time_ms(self) -> int:
        return int(time.time() * 1000)

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class FakeClock:
    """Frozen clock that only moves when told to.

    ``sleep`` advances the clock instead of blocking, so code that backs off
    through the clock runs instantly under test.
    """

    def __init__(self, start: float | None = None) -> None:
        self._now = time.time() if start is None else float(start)

    def time(self) -> int:
        return int(self._now)

    def time_ms(self) -> int:
        return int(self._now * 1000)

    def monotonic(self) -> float:
        return self._now

    def sleep(self, seconds: float) -> None:
        self.advance(max(seconds, 0.0))

    def advance(self, seconds: float) -> FakeClock:
        self._now += seconds
        return self

    def set(self, timestamp: float) -> FakeClock:
        self._now = float(timestamp)
        return self
