from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from labhours.aggregator import HourAggregator
from labhours.db import Database
from labhours.tracker import WorkSessionTracker
from labhours.week import window_for

WEEK_START = datetime(2026, 2, 2, 0, 0, tzinfo=timezone.utc)
WINDOW = window_for(WEEK_START, 0, ZoneInfo("UTC"))


def make_env() -> tuple[WorkSessionTracker, HourAggregator]:
    db = Database(":memory:")
    db.initialize()
    db.upsert_user("100", "Alice", 20)
    db.upsert_user("200", "Bob", 20)
    return WorkSessionTracker(db=db), HourAggregator(db)


def record(
    tracker: WorkSessionTracker,
    user_id: str,
    start: datetime,
    seconds: int,
    project_id: int | None = None,
) -> None:
    session = tracker.start(user_id, project_id=project_id, started_at_utc=start)
    tracker.stop(session.id, user_id, ended_at_utc=start + timedelta(seconds=seconds))


def test_sums_completed_sessions_inside_window() -> None:
    tracker, aggregator = make_env()
    record(tracker, "100", WEEK_START + timedelta(hours=9), 3600)
    record(tracker, "100", WEEK_START + timedelta(days=2, hours=9), 7200)
    record(tracker, "200", WEEK_START + timedelta(hours=10), 600)

    assert aggregator.sum_duration("100", WINDOW) == 10800
    assert aggregator.sum_hours("100", WINDOW) == 3.0


def test_open_sessions_are_excluded() -> None:
    tracker, aggregator = make_env()
    record(tracker, "100", WEEK_START + timedelta(hours=1), 1800)
    tracker.start("100", started_at_utc=WEEK_START + timedelta(hours=5))

    assert aggregator.sum_duration("100", WINDOW) == 1800


def test_window_bounds_are_half_open() -> None:
    tracker, aggregator = make_env()
    record(tracker, "100", WINDOW.start_utc, 60)
    record(tracker, "100", WINDOW.end_utc, 120)
    record(tracker, "100", WINDOW.start_utc - timedelta(seconds=1), 240)

    assert aggregator.sum_duration("100", WINDOW) == 60


def test_empty_result_is_zero() -> None:
    _, aggregator = make_env()

    assert aggregator.sum_duration("100", WINDOW) == 0
    assert aggregator.sum_duration("nobody", WINDOW) == 0


def test_project_filter_and_breakdown() -> None:
    tracker, aggregator = make_env()
    record(tracker, "100", WEEK_START + timedelta(hours=1), 3600, project_id=7)
    record(tracker, "100", WEEK_START + timedelta(hours=3), 1200, project_id=8)
    record(tracker, "200", WEEK_START + timedelta(hours=2), 7200, project_id=7)

    assert aggregator.sum_duration("100", WINDOW, project_id=7) == 3600

    breakdown = aggregator.project_hours(7, WINDOW)

    assert breakdown.total_seconds == 10800
    assert breakdown.session_count == 2
    assert [(item.user_name, item.seconds) for item in breakdown.by_user] == [("Bob", 7200), ("Alice", 3600)]
