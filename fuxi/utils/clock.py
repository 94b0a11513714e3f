"""
Time sources for the session engine.

All engine timestamps are integer milliseconds since the epoch.
"""
import time
from datetime import datetime


class Clock:
    """Wall clock returning epoch milliseconds."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def local_hour(self) -> int:
        """Hour of day (0-23) in local time."""
        return datetime.fromtimestamp(self.now_ms() / 1000.0).hour


class ManualClock(Clock):
    """Clock that only moves when told to. Used by simulations and tests."""

    def __init__(self, start_ms: int = 0, hour: int = 12):
        self._now = start_ms
        self._hour = hour

    def now_ms(self) -> int:
        return self._now

    def local_hour(self) -> int:
        return self._hour

    def advance(self, ms: int) -> int:
        self._now += ms
        return self._now

    def set(self, now_ms: int, hour: int = None) -> None:
        self._now = now_ms
        if hour is not None:
            self._hour = hour
