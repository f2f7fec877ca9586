"""
Time sources for the reconciliation subsystem.

The orchestrator and scheduler never read the wall clock directly; they ask an
injected clock for "now". Production code uses SystemClock, tests use
FixedClock and move it explicitly.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything with a ``now()`` returning an aware UTC datetime."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a given instant until advanced or set.

    Args:
        at: Initial instant. Naive datetimes are treated as UTC.

    Usage:
        clock = FixedClock(datetime(2026, 1, 3, 9, 0))
        clock.advance(days=1)
        clock.now()  # 2026-01-04 09:00 UTC
    """

    def __init__(self, at: datetime):
        self._now = _as_utc(at)

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime) -> None:
        self._now = _as_utc(at)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta expressed as keyword arguments."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ['Clock', 'SystemClock', 'FixedClock']
