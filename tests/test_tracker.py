from datetime import datetime, timedelta, timezone

import pytest

from labhours.db import Database
from labhours.errors import InvalidStateError, NotFoundError, ValidationError
from labhours.models import ACTIVE, COMPLETED, PAUSED
from labhours.tracker import WorkSessionTracker

T0 = datetime(2026, 2, 2, 9, 0, 0, tzinfo=timezone.utc)


def make_tracker() -> tuple[Database, WorkSessionTracker]:
    db = Database(":memory:")
    db.initialize()
    db.upsert_user("100", "Alice", 20)
    db.upsert_user("200", "Bob", 20)
    return db, WorkSessionTracker(db=db, clock=lambda: T0)


def test_start_twice_keeps_a_single_active_session() -> None:
    _, tracker = make_tracker()

    first = tracker.start("100", activity="soldering", started_at_utc=T0)
    second = tracker.start("100", activity="other", started_at_utc=T0 + timedelta(minutes=5))

    assert second.id == first.id
    assert second.activity == "soldering"
    open_sessions = [s for s in tracker.list_for_user("100") if s.status == ACTIVE]
    assert len(open_sessions) == 1


def test_start_returns_paused_session_instead_of_opening_another() -> None:
    _, tracker = make_tracker()
    session = tracker.start("100")
    tracker.pause(session.id, "100")

    again = tracker.start("100")

    assert again.id == session.id
    assert again.status == PAUSED
    assert len(tracker.list_for_user("100")) == 1


def test_stop_freezes_duration_once() -> None:
    _, tracker = make_tracker()
    session = tracker.start("100", started_at_utc=T0)

    stopped = tracker.stop(session.id, "100", ended_at_utc=T0 + timedelta(seconds=90))

    assert stopped.status == COMPLETED
    assert stopped.duration_seconds == 90
    assert stopped.ended_at_utc == T0 + timedelta(seconds=90)

    with pytest.raises(InvalidStateError):
        tracker.stop(session.id, "100", ended_at_utc=T0 + timedelta(hours=2))

    assert tracker.get(session.id, "100").duration_seconds == 90


def test_pause_resume_and_stop_from_paused() -> None:
    _, tracker = make_tracker()
    session = tracker.start("100", started_at_utc=T0)

    assert tracker.pause(session.id, "100").status == PAUSED
    with pytest.raises(InvalidStateError):
        tracker.pause(session.id, "100")

    assert tracker.resume(session.id, "100").status == ACTIVE
    with pytest.raises(InvalidStateError):
        tracker.resume(session.id, "100")

    tracker.pause(session.id, "100")
    stopped = tracker.stop(session.id, "100", ended_at_utc=T0 + timedelta(hours=1))
    assert stopped.duration_seconds == 3600


def test_completed_session_has_no_transitions() -> None:
    _, tracker = make_tracker()
    session = tracker.start("100", started_at_utc=T0)
    tracker.stop(session.id, "100", ended_at_utc=T0 + timedelta(minutes=1))

    with pytest.raises(InvalidStateError):
        tracker.pause(session.id, "100")
    with pytest.raises(InvalidStateError):
        tracker.resume(session.id, "100")


def test_foreign_or_missing_session_is_not_found() -> None:
    _, tracker = make_tracker()
    session = tracker.start("100")

    with pytest.raises(NotFoundError):
        tracker.stop(session.id, "200")
    with pytest.raises(NotFoundError):
        tracker.pause(9999, "100")


def test_unknown_user_cannot_start() -> None:
    _, tracker = make_tracker()

    with pytest.raises(NotFoundError):
        tracker.start("999")


def test_stop_before_start_is_rejected() -> None:
    _, tracker = make_tracker()
    session = tracker.start("100", started_at_utc=T0)

    with pytest.raises(ValidationError):
        tracker.stop(session.id, "100", ended_at_utc=T0 - timedelta(seconds=1))

    assert tracker.get(session.id, "100").status == ACTIVE


def test_naive_end_time_is_rejected() -> None:
    _, tracker = make_tracker()
    session = tracker.start("100", started_at_utc=T0)

    with pytest.raises(ValueError):
        tracker.stop(session.id, "100", ended_at_utc=datetime(2026, 2, 2, 10, 0, 0))

    assert tracker.get(session.id, "100").status == ACTIVE


def test_new_session_after_stop() -> None:
    _, tracker = make_tracker()
    first = tracker.start("100", started_at_utc=T0)
    tracker.stop(first.id, "100", ended_at_utc=T0 + timedelta(minutes=30))

    second = tracker.start("100", started_at_utc=T0 + timedelta(hours=1))

    assert second.id != first.id
    assert tracker.active_for("100").id == second.id


def test_store_rejects_a_second_open_session_row() -> None:
    db, _ = make_tracker()

    assert db.insert_session("100", "Alice", T0) is not None
    assert db.insert_session("100", "Alice", T0 + timedelta(minutes=1)) is None
