"""
Core Module - System Clock.

============================================================
RESPONSIBILITY
============================================================
Single source of "now" for the integrity engine.

- Velocity windows and flag timestamps read time from here
- MockClock makes the sliding windows deterministic in tests
- All datetimes are timezone-aware UTC

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading


class ClockProtocol(ABC):
    """Time source injected into scorers and services."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time, UTC."""


class SystemClock(ClockProtocol):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """
    Manually driven clock for tests.

    Time stands still until advance() moves it.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        start = initial_time or datetime.now(timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._time = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Move time forward.

        Args:
            seconds: Seconds to add
            **kwargs: Extra timedelta units (minutes, hours, days)
        """
        with self._lock:
            self._time += timedelta(seconds=seconds, **kwargs)


_default_clock: ClockProtocol = SystemClock()


def get_clock() -> ClockProtocol:
    """Return the process-wide default clock."""
    return _default_clock
