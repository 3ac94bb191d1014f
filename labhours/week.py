from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .models import WeekWindow

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_week_start(value: str) -> int:
    """Map a weekday name (or its three-letter prefix) to date.weekday() numbering."""
    cleaned = value.strip().lower()
    for index, name in enumerate(WEEKDAY_NAMES):
        if cleaned == name or (len(cleaned) == 3 and name.startswith(cleaned)):
            return index
    raise ValueError(f"Unknown weekday: {value!r}")


def local_midnight_utc(day_value: date, tz: ZoneInfo) -> datetime:
    midnight_local = datetime.combine(day_value, time.min, tzinfo=tz)
    return midnight_local.astimezone(timezone.utc)


def window_for(reference: datetime, week_start: int, tz: ZoneInfo) -> WeekWindow:
    """Return the week containing ``reference``.

    The window starts at local midnight of the most recent ``week_start`` day at or
    before ``reference`` and ends exactly seven local days later (exclusive). Across a
    DST change the window is therefore 167 or 169 hours long.
    """
    if reference.tzinfo is None:
        raise ValueError("reference must be timezone-aware")
    if not 0 <= week_start <= 6:
        raise ValueError("week_start must be between 0 (Monday) and 6 (Sunday)")

    local_day = reference.astimezone(tz).date()
    start_day = local_day - timedelta(days=(local_day.weekday() - week_start) % 7)
    return WeekWindow(
        start_utc=local_midnight_utc(start_day, tz),
        end_utc=local_midnight_utc(start_day + timedelta(days=7), tz),
    )


class WeekCalendar:
    """The one configured week convention shared by every caller."""

    def __init__(self, tz: ZoneInfo, week_start: int = 0) -> None:
        self.tz = tz
        self.week_start = week_start

    def window_for(self, reference: datetime) -> WeekWindow:
        return window_for(reference, self.week_start, self.tz)

    def window_containing_day(self, day_value: date) -> WeekWindow:
        return self.window_for(local_midnight_utc(day_value, self.tz))

    def previous(self, window: WeekWindow, weeks: int = 1) -> WeekWindow:
        start_day = window.start_utc.astimezone(self.tz).date() - timedelta(days=7 * weeks)
        return self.window_containing_day(start_day)

    def local_start_day(self, window: WeekWindow) -> date:
        return window.start_utc.astimezone(self.tz).date()

    def local_last_day(self, window: WeekWindow) -> date:
        return self.local_start_day(window) + timedelta(days=6)
