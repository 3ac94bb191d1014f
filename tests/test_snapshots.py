from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from labhours.db import Database
from labhours.models import WeekWindow
from labhours.snapshots import WeeklySnapshotStore
from labhours.week import WeekCalendar

NOW = datetime(2026, 2, 4, 12, 0, tzinfo=timezone.utc)
CALENDAR = WeekCalendar(ZoneInfo("UTC"), week_start=0)
WINDOW = CALENDAR.window_for(NOW)


def make_store(db: Database | None = None) -> tuple[Database, WeeklySnapshotStore]:
    db = db or Database(":memory:")
    db.initialize()
    return db, WeeklySnapshotStore(db, CALENDAR, clock=lambda: NOW)


def test_create_if_absent_is_idempotent() -> None:
    _, store = make_store()

    row, created = store.create_if_absent("100", "Alice", WINDOW, 3.0)
    again, created_again = store.create_if_absent("100", "Alice", WINDOW, 9.5)

    assert created is True
    assert created_again is False
    assert again.id == row.id
    assert again.total_hours == 3.0
    assert len(store.list_history(user_id="100")) == 1


def test_zero_hours_never_creates_a_row() -> None:
    _, store = make_store()

    assert store.create_if_absent("100", "Alice", WINDOW, 0) == (None, False)
    assert store.create_if_absent("100", "Alice", WINDOW, 0) == (None, False)
    assert store.get("100", WINDOW.start_utc) is None


def test_concurrent_insert_is_reported_as_existing() -> None:
    class StaleReadDatabase(Database):
        """First archive lookup misses, as if another trigger inserted right after it."""

        def __init__(self) -> None:
            super().__init__(":memory:")
            self.stale_reads = 0

        def get_history(self, user_id, week_start_utc):
            if self.stale_reads:
                self.stale_reads -= 1
                return None
            return super().get_history(user_id, week_start_utc)

    db = StaleReadDatabase()
    db.initialize()
    db.insert_history("100", "Alice", WINDOW.start_utc, WINDOW.end_utc, 2.0, NOW)
    db.stale_reads = 1
    _, store = make_store(db)

    row, created = store.create_if_absent("100", "Alice", WINDOW, 5.0)

    assert created is False
    assert row.total_hours == 2.0
    assert len(db.list_history(user_id="100")) == 1


def test_for_week_orders_by_hours() -> None:
    _, store = make_store()
    store.create_if_absent("100", "Alice", WINDOW, 3.0)
    store.create_if_absent("200", "Bob", WINDOW, 8.0)
    store.create_if_absent("100", "Alice", CALENDAR.previous(WINDOW), 4.0)

    rows = store.for_week(WINDOW)

    assert [row.user_name for row in rows] == ["Bob", "Alice"]


def test_for_user_returns_newest_weeks_first() -> None:
    _, store = make_store()
    for weeks_back in range(5):
        store.create_if_absent("100", "Alice", CALENDAR.previous(WINDOW, weeks_back), 1.0 + weeks_back)

    rows = store.for_user("100", weeks=3)

    assert [row.total_hours for row in rows] == [1.0, 2.0, 3.0]
    assert rows[0].week_start_utc == WINDOW.start_utc


def test_weekly_stats_cover_current_and_previous_weeks() -> None:
    _, store = make_store()
    store.create_if_absent("100", "Alice", WINDOW, 3.0)
    store.create_if_absent("200", "Bob", WINDOW, 5.0)
    store.create_if_absent("100", "Alice", CALENDAR.previous(WINDOW, 2), 6.0)

    stats = store.weekly_stats()

    assert len(stats) == 5
    assert stats[0].window == WINDOW
    assert stats[0].total_hours == 8.0
    assert stats[0].user_count == 2
    assert [row.user_name for row in stats[0].top_users] == ["Bob", "Alice"]
    assert stats[1].user_count == 0
    assert stats[2].total_hours == 6.0
    assert stats[4].window.start_utc == WINDOW.start_utc - timedelta(weeks=4)


def test_current_week_uses_the_store_clock() -> None:
    _, store = make_store()

    assert store.current_week() == WeekWindow(
        start_utc=datetime(2026, 2, 2, 0, 0, tzinfo=timezone.utc),
        end_utc=datetime(2026, 2, 9, 0, 0, tzinfo=timezone.utc),
    )
