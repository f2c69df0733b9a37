"""
Injectable time source.

Document dates, the financial year in document numbers and estimate
expiry all come from a Clock handed to the service, never from
``date.today()``.  SystemClock is the only implementation that reads the
real time.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

SECONDS_PER_DAY = 86_400


@runtime_checkable
class Clock(Protocol):
    """Anything with a timezone-aware ``now()`` and a matching ``today()``."""

    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class DeterministicClock:
    """
    Frozen clock for tests.

    Time only moves when the test moves it, through ``set_time``,
    ``advance`` or ``advance_days``.  Defaults to noon UTC on
    15 June 2024, inside financial year 2024-25.
    """

    DEFAULT_START = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def today(self) -> date:
        return self._current.date()

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self.advance(days * SECONDS_PER_DAY)
