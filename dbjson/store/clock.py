"""
Strictly increasing millisecond timestamps.

Attribute entries are ordered by timestamp when histories are merged, so
a single store must never issue the same timestamp twice, even when it
is called several times within one wall-clock millisecond.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class TimestampClock:
    """Issues Unix-millisecond timestamps that never repeat or go back.

    Attributes:
        last: Highest timestamp issued (or observed via advance_to)

    Example:
        >>> clock = TimestampClock(time_source=lambda: 1000)
        >>> clock.next(), clock.next()
        (1000, 1001)
    """

    def __init__(self, time_source: Callable[[], int] = wall_clock_ms, last: int = 0) -> None:
        self._time_source = time_source
        self.last = last
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the next timestamp and advance the watermark."""
        with self._lock:
            now = self._time_source()
            ts = now if now > self.last else self.last + 1
            if now < self.last:
                logger.debug(f"Wall clock {now} behind watermark {self.last}; issuing {ts}")
            self.last = ts
            return ts

    def advance_to(self, timestamp: int) -> None:
        """Raise the watermark so later timestamps exceed timestamp."""
        with self._lock:
            if timestamp > self.last:
                self.last = timestamp
