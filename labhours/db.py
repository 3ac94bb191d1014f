from __future__ import annotations

import functools
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from .errors import PersistenceError
from .models import (
    COMPLETED,
    OPEN_STATUSES,
    ScheduleEntry,
    UserAccount,
    WeeklyHoursHistory,
    WorkSession,
)

F = TypeVar("F", bound=Callable[..., Any])


def _persistent(func: F) -> F:
    """Translate driver failures into PersistenceError and roll back the open transaction."""

    @functools.wraps(func)
    def wrapper(self: "Database", *args: Any, **kwargs: Any) -> Any:
        try:
            return func(self, *args, **kwargs)
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise PersistenceError(f"{func.__name__} failed: {exc}") from exc

    return wrapper  # type: ignore[return-value]


class Database:
    """Thin SQLite access layer for sessions, weekly archives and schedules."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    @_persistent
    def initialize(self) -> None:
        # users: the slice of the user entity this engine reads and resets.
        # work_sessions: at most one open (active/paused) row per user, enforced by index.
        # weekly_hours_history: one archive per (user_id, week_start_utc).
        # meta: small key/value store for scheduler markers.
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
              user_id TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              week_hours REAL NOT NULL DEFAULT 0,
              current_week_hours REAL NOT NULL DEFAULT 0,
              status TEXT NOT NULL DEFAULT 'active'
            );

            CREATE TABLE IF NOT EXISTS work_sessions (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id TEXT NOT NULL,
              user_name TEXT NOT NULL,
              started_at_utc TEXT NOT NULL,
              ended_at_utc TEXT,
              duration_seconds INTEGER,
              activity TEXT,
              location TEXT,
              project_id INTEGER,
              status TEXT NOT NULL,
              created_at_utc TEXT NOT NULL,
              updated_at_utc TEXT NOT NULL
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_work_sessions_one_open
              ON work_sessions(user_id) WHERE status IN ('active', 'paused');

            CREATE INDEX IF NOT EXISTS idx_work_sessions_user_start
              ON work_sessions(user_id, started_at_utc);

            CREATE TABLE IF NOT EXISTS weekly_hours_history (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id TEXT NOT NULL,
              user_name TEXT NOT NULL,
              week_start_utc TEXT NOT NULL,
              week_end_utc TEXT NOT NULL,
              total_hours REAL NOT NULL,
              created_at_utc TEXT NOT NULL,
              UNIQUE (user_id, week_start_utc)
            );

            CREATE TABLE IF NOT EXISTS user_schedules (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id TEXT NOT NULL,
              day_of_week INTEGER NOT NULL,
              start_time TEXT NOT NULL,
              end_time TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS meta (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    # users

    @_persistent
    def upsert_user(self, user_id: str, name: str, week_hours: float, status: str = "active") -> UserAccount:
        self._conn.execute(
            """
            INSERT INTO users (user_id, name, week_hours, status)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id)
            DO UPDATE SET name=excluded.name, week_hours=excluded.week_hours, status=excluded.status
            """,
            (user_id, name, week_hours, status),
        )
        self._conn.commit()
        return self.get_user(user_id)

    @_persistent
    def ensure_user(self, user_id: str, name: str, week_hours: float) -> UserAccount:
        """Register a user on first sight; later calls refresh the name but keep the budget."""
        self._conn.execute(
            """
            INSERT INTO users (user_id, name, week_hours)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET name=excluded.name
            """,
            (user_id, name, week_hours),
        )
        self._conn.commit()
        return self.get_user(user_id)

    @_persistent
    def get_user(self, user_id: str) -> UserAccount | None:
        row = self._conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return _user_from_row(row)

    @_persistent
    def list_active_users(self) -> list[UserAccount]:
        rows = self._conn.execute(
            "SELECT * FROM users WHERE status = 'active' ORDER BY user_id"
        ).fetchall()
        return [_user_from_row(row) for row in rows]

    @_persistent
    def set_week_hours(self, user_id: str, week_hours: float) -> bool:
        cursor = self._conn.execute(
            "UPDATE users SET week_hours = ? WHERE user_id = ?",
            (week_hours, user_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    @_persistent
    def reset_current_week_hours(self, user_id: str) -> None:
        self._conn.execute("UPDATE users SET current_week_hours = 0 WHERE user_id = ?", (user_id,))
        self._conn.commit()

    # work sessions

    @_persistent
    def insert_session(
        self,
        user_id: str,
        user_name: str,
        started_at_utc: datetime,
        *,
        activity: str | None = None,
        location: str | None = None,
        project_id: int | None = None,
    ) -> WorkSession | None:
        """Insert an active session; returns None when the user already has an open one."""
        started = _to_utc(started_at_utc).isoformat()
        try:
            cursor = self._conn.execute(
                """
                INSERT INTO work_sessions (
                  user_id, user_name, started_at_utc, activity, location, project_id,
                  status, created_at_utc, updated_at_utc
                )
                VALUES (?, ?, ?, ?, ?, ?, 'active', ?, ?)
                """,
                (user_id, user_name, started, activity, location, project_id, started, started),
            )
        except sqlite3.IntegrityError:
            self._conn.rollback()
            return None
        self._conn.commit()
        return self.get_session(cursor.lastrowid)

    @_persistent
    def get_session(self, session_id: int) -> WorkSession | None:
        row = self._conn.execute("SELECT * FROM work_sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            return None
        return _session_from_row(row)

    @_persistent
    def get_open_session(self, user_id: str) -> WorkSession | None:
        row = self._conn.execute(
            "SELECT * FROM work_sessions WHERE user_id = ? AND status IN (?, ?)",
            (user_id, *OPEN_STATUSES),
        ).fetchone()
        if row is None:
            return None
        return _session_from_row(row)

    @_persistent
    def list_sessions(self, user_id: str) -> list[WorkSession]:
        rows = self._conn.execute(
            "SELECT * FROM work_sessions WHERE user_id = ? ORDER BY started_at_utc DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_session_from_row(row) for row in rows]

    @_persistent
    def transition_session(self, session_id: int, from_status: str, to_status: str, at_utc: datetime) -> bool:
        """Compare-and-set a session status; False when the row was not in ``from_status``."""
        cursor = self._conn.execute(
            """
            UPDATE work_sessions
            SET status = ?, updated_at_utc = ?
            WHERE id = ? AND status = ?
            """,
            (to_status, _to_utc(at_utc).isoformat(), session_id, from_status),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    @_persistent
    def complete_session(self, session_id: int, ended_at_utc: datetime, duration_seconds: int) -> bool:
        # The status guard makes the duration write happen at most once per session.
        ended = _to_utc(ended_at_utc).isoformat()
        cursor = self._conn.execute(
            """
            UPDATE work_sessions
            SET status = ?, ended_at_utc = ?, duration_seconds = ?, updated_at_utc = ?
            WHERE id = ? AND status IN (?, ?)
            """,
            (COMPLETED, ended, duration_seconds, ended, session_id, *OPEN_STATUSES),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    @_persistent
    def sum_completed_seconds(
        self,
        user_id: str,
        start_utc: datetime,
        end_utc: datetime,
        project_id: int | None = None,
    ) -> int:
        query = """
            SELECT COALESCE(SUM(duration_seconds), 0) AS total
            FROM work_sessions
            WHERE user_id = ? AND status = ? AND started_at_utc >= ? AND started_at_utc < ?
        """
        params: list[Any] = [user_id, COMPLETED, _to_utc(start_utc).isoformat(), _to_utc(end_utc).isoformat()]
        if project_id is not None:
            query += " AND project_id = ?"
            params.append(project_id)
        row = self._conn.execute(query, params).fetchone()
        return int(row["total"])

    @_persistent
    def list_completed_sessions(
        self,
        *,
        project_id: int | None = None,
        start_utc: datetime | None = None,
        end_utc: datetime | None = None,
    ) -> list[WorkSession]:
        query = "SELECT * FROM work_sessions WHERE status = ?"
        params: list[Any] = [COMPLETED]
        if project_id is not None:
            query += " AND project_id = ?"
            params.append(project_id)
        if start_utc is not None:
            query += " AND started_at_utc >= ?"
            params.append(_to_utc(start_utc).isoformat())
        if end_utc is not None:
            query += " AND started_at_utc < ?"
            params.append(_to_utc(end_utc).isoformat())
        query += " ORDER BY started_at_utc DESC, id DESC"
        rows = self._conn.execute(query, params).fetchall()
        return [_session_from_row(row) for row in rows]

    # weekly history

    @_persistent
    def get_history(self, user_id: str, week_start_utc: datetime) -> WeeklyHoursHistory | None:
        row = self._conn.execute(
            "SELECT * FROM weekly_hours_history WHERE user_id = ? AND week_start_utc = ?",
            (user_id, _to_utc(week_start_utc).isoformat()),
        ).fetchone()
        if row is None:
            return None
        return _history_from_row(row)

    @_persistent
    def insert_history(
        self,
        user_id: str,
        user_name: str,
        week_start_utc: datetime,
        week_end_utc: datetime,
        total_hours: float,
        created_at_utc: datetime,
    ) -> WeeklyHoursHistory | None:
        """Insert an archive row; returns None if (user_id, week_start_utc) already exists."""
        cursor = self._conn.execute(
            """
            INSERT INTO weekly_hours_history (
              user_id, user_name, week_start_utc, week_end_utc, total_hours, created_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, week_start_utc) DO NOTHING
            """,
            (
                user_id,
                user_name,
                _to_utc(week_start_utc).isoformat(),
                _to_utc(week_end_utc).isoformat(),
                total_hours,
                _to_utc(created_at_utc).isoformat(),
            ),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            return None
        return self.get_history(user_id, week_start_utc)

    @_persistent
    def list_history(
        self,
        *,
        user_id: str | None = None,
        week_start_from_utc: datetime | None = None,
        week_start_before_utc: datetime | None = None,
        order_by_hours: bool = False,
        limit: int | None = None,
    ) -> list[WeeklyHoursHistory]:
        query = "SELECT * FROM weekly_hours_history WHERE 1 = 1"
        params: list[Any] = []
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        if week_start_from_utc is not None:
            query += " AND week_start_utc >= ?"
            params.append(_to_utc(week_start_from_utc).isoformat())
        if week_start_before_utc is not None:
            query += " AND week_start_utc < ?"
            params.append(_to_utc(week_start_before_utc).isoformat())
        if order_by_hours:
            query += " ORDER BY total_hours DESC, user_name ASC"
        else:
            query += " ORDER BY week_start_utc DESC, user_name ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(query, params).fetchall()
        return [_history_from_row(row) for row in rows]

    # schedules

    @_persistent
    def insert_schedule(self, entry: ScheduleEntry) -> ScheduleEntry:
        cursor = self._conn.execute(
            """
            INSERT INTO user_schedules (user_id, day_of_week, start_time, end_time)
            VALUES (?, ?, ?, ?)
            """,
            (entry.user_id, entry.day_of_week, entry.start_time, entry.end_time),
        )
        self._conn.commit()
        return self.get_schedule(cursor.lastrowid)

    @_persistent
    def update_schedule(self, entry: ScheduleEntry) -> ScheduleEntry | None:
        cursor = self._conn.execute(
            """
            UPDATE user_schedules
            SET day_of_week = ?, start_time = ?, end_time = ?
            WHERE id = ?
            """,
            (entry.day_of_week, entry.start_time, entry.end_time, entry.id),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            return None
        return self.get_schedule(entry.id)

    @_persistent
    def delete_schedule(self, schedule_id: int) -> bool:
        cursor = self._conn.execute("DELETE FROM user_schedules WHERE id = ?", (schedule_id,))
        self._conn.commit()
        return cursor.rowcount > 0

    @_persistent
    def get_schedule(self, schedule_id: int) -> ScheduleEntry | None:
        row = self._conn.execute("SELECT * FROM user_schedules WHERE id = ?", (schedule_id,)).fetchone()
        if row is None:
            return None
        return _schedule_from_row(row)

    @_persistent
    def list_schedules(self, user_id: str | None = None) -> list[ScheduleEntry]:
        query = "SELECT * FROM user_schedules"
        params: tuple[Any, ...] = ()
        if user_id is not None:
            query += " WHERE user_id = ?"
            params = (user_id,)
        query += " ORDER BY day_of_week ASC, start_time ASC"
        rows = self._conn.execute(query, params).fetchall()
        return [_schedule_from_row(row) for row in rows]

    # meta

    @_persistent
    def get_meta(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    @_persistent
    def set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO meta (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
        self._conn.commit()


def _to_utc(value: datetime) -> datetime:
    """Normalize a timezone-aware datetime to whole-second UTC for storage."""
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc).replace(microsecond=0)


def _parse_utc(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _user_from_row(row: sqlite3.Row) -> UserAccount:
    return UserAccount(
        user_id=row["user_id"],
        name=row["name"],
        week_hours=float(row["week_hours"]),
        current_week_hours=float(row["current_week_hours"]),
        status=row["status"],
    )


def _session_from_row(row: sqlite3.Row) -> WorkSession:
    return WorkSession(
        id=row["id"],
        user_id=row["user_id"],
        user_name=row["user_name"],
        started_at_utc=datetime.fromisoformat(row["started_at_utc"]),
        ended_at_utc=_parse_utc(row["ended_at_utc"]),
        duration_seconds=row["duration_seconds"],
        activity=row["activity"],
        location=row["location"],
        project_id=row["project_id"],
        status=row["status"],
    )


def _history_from_row(row: sqlite3.Row) -> WeeklyHoursHistory:
    return WeeklyHoursHistory(
        id=row["id"],
        user_id=row["user_id"],
        user_name=row["user_name"],
        week_start_utc=datetime.fromisoformat(row["week_start_utc"]),
        week_end_utc=datetime.fromisoformat(row["week_end_utc"]),
        total_hours=float(row["total_hours"]),
    )


def _schedule_from_row(row: sqlite3.Row) -> ScheduleEntry:
    return ScheduleEntry(
        id=row["id"],
        user_id=row["user_id"],
        day_of_week=row["day_of_week"],
        start_time=row["start_time"],
        end_time=row["end_time"],
    )
