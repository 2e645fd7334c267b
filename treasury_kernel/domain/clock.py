"""
Injectable time source.

Services take a Clock in their constructor and never read the system time
themselves.  The business day (receipt numbers, one verification per day,
daily opening and closing, the daily report) is ``clock.today()``, the UTC
calendar date of ``clock.now()``.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware current instant."""
        ...

    def today(self) -> date:
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a chosen instant until moved explicitly.

    Starts at 2024-01-01 12:00 UTC unless told otherwise, which keeps
    receipt numbers in tests predictable (``CAISSE-20240101-REC-0001``).
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance_days(self, days: int = 1) -> None:
        """Same wall-clock time on a later business day."""
        self._current += timedelta(days=days)
