from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from labhours.week import WeekCalendar, parse_week_start, window_for

UTC = ZoneInfo("UTC")


def test_window_starts_on_most_recent_monday() -> None:
    reference = datetime(2026, 2, 4, 15, 30, tzinfo=timezone.utc)

    window = window_for(reference, 0, UTC)

    assert window.start_utc == datetime(2026, 2, 2, tzinfo=timezone.utc)
    assert window.end_utc == datetime(2026, 2, 9, tzinfo=timezone.utc)


def test_reference_at_week_start_belongs_to_that_week() -> None:
    reference = datetime(2026, 2, 2, 0, 0, tzinfo=timezone.utc)

    window = window_for(reference, 0, UTC)

    assert window.start_utc == reference
    assert window.contains(reference)
    assert not window.contains(window.end_utc)


def test_sunday_week_start() -> None:
    reference = datetime(2026, 2, 4, 15, 30, tzinfo=timezone.utc)

    window = window_for(reference, parse_week_start("sunday"), UTC)

    assert window.start_utc == datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_midnight_is_computed_in_configured_timezone() -> None:
    tz = ZoneInfo("America/Sao_Paulo")
    # Sunday 22:00 local time, already Monday in UTC.
    reference = datetime(2026, 2, 2, 1, 0, tzinfo=timezone.utc)

    window = window_for(reference, 0, tz)

    assert window.start_utc == datetime(2026, 1, 26, 3, 0, tzinfo=timezone.utc)
    assert window.end_utc == datetime(2026, 2, 2, 3, 0, tzinfo=timezone.utc)


def test_week_across_dst_change_is_seven_local_days() -> None:
    tz = ZoneInfo("America/New_York")
    reference = datetime(2026, 3, 5, 12, 0, tzinfo=tz)

    window = window_for(reference, 0, tz)

    assert window.start_utc == datetime(2026, 3, 2, 5, 0, tzinfo=timezone.utc)
    assert window.end_utc == datetime(2026, 3, 9, 4, 0, tzinfo=timezone.utc)
    assert window.end_utc - window.start_utc == timedelta(hours=167)


def test_naive_reference_is_rejected() -> None:
    with pytest.raises(ValueError):
        window_for(datetime(2026, 2, 4, 12, 0), 0, UTC)


def test_parse_week_start_names() -> None:
    assert parse_week_start("Monday") == 0
    assert parse_week_start("sun") == 6
    with pytest.raises(ValueError):
        parse_week_start("someday")


def test_calendar_previous_and_day_lookup() -> None:
    calendar = WeekCalendar(UTC, week_start=0)
    current = calendar.window_containing_day(date(2026, 2, 5))

    previous = calendar.previous(current)

    assert calendar.local_start_day(current) == date(2026, 2, 2)
    assert calendar.local_last_day(current) == date(2026, 2, 8)
    assert calendar.local_start_day(previous) == date(2026, 1, 26)
    assert calendar.local_start_day(calendar.previous(current, 4)) == date(2026, 1, 5)
