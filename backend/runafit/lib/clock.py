"""
Studio wall clock.

Class times are local to the studio, so "now" and "today" are always taken
in the studio timezone. Services receive a clock instance so tests can pin
time with FixedClock.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from runafit.lib.settings import settings


class StudioClock:
    """Current time in the studio timezone."""

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = ZoneInfo(tz_name or settings.studio_timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def starts_at(self, class_date: date, class_time: time) -> datetime:
        """Aware start datetime of the class at (class_date, class_time)."""
        return datetime.combine(class_date, class_time, tzinfo=self.tz)


class FixedClock(StudioClock):
    """Clock pinned to a given moment; naive datetimes are read as studio-local."""

    def __init__(self, moment: datetime, tz_name: Optional[str] = None):
        super().__init__(tz_name)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        self.moment = moment.astimezone(self.tz)

    def now(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> None:
        """Move the pinned moment forward, e.g. advance(hours=2)."""
        self.moment = self.moment + timedelta(**kwargs)
