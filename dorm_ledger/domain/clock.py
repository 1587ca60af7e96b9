"""
Clock -- injectable source of "now" for the ledger.

Payment paid_at, outgoing submitted_at and decided_at, insurance
returned_at, audit occurred_at and default expense dates all come from a
Clock passed to the service.  Nothing under ``dorm_ledger.services`` or
``dorm_ledger.domain`` reads the wall clock itself.

SystemClock is the only implementation that touches real time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now_utc(self) -> datetime:
        ...

    def now(self) -> datetime:
        return self.now_utc()

    def today(self) -> date:
        """UTC calendar date of ``now_utc()``."""
        return self.now_utc().date()


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a start instant until moved explicitly.

    The default start is the first morning of the 2024 academic year.
    Naive datetimes passed in are taken to be UTC.
    """

    DEFAULT_START = datetime(2024, 9, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _as_utc(fixed_time or self.DEFAULT_START)

    def now_utc(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _as_utc(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        """Move forward whole days; handy for month-long ledger scenarios."""
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        self.advance(1)
        return self._current


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
