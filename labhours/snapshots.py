from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from .db import Database
from .models import WeekTotals, WeeklyHoursHistory, WeekWindow
from .tracker import utc_now
from .week import WeekCalendar

TOP_USERS = 5


class WeeklySnapshotStore:
    """Archived weekly totals, at most one row per (user, week start)."""

    def __init__(
        self,
        db: Database,
        calendar: WeekCalendar,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.calendar = calendar
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def create_if_absent(
        self,
        user_id: str,
        user_name: str,
        window: WeekWindow,
        total_hours: float,
    ) -> tuple[WeeklyHoursHistory | None, bool]:
        existing = self.db.get_history(user_id, window.start_utc)
        if existing is not None:
            return existing, False

        # Zero-hour weeks are left absent.
        if total_hours <= 0:
            return None, False

        row = self.db.insert_history(
            user_id,
            user_name,
            window.start_utc,
            window.end_utc,
            total_hours,
            self.clock(),
        )
        if row is None:
            # Another trigger archived this week between the read and the insert.
            self.logger.warning(
                "Archive for user=%s week=%s was created concurrently",
                user_id,
                window.start_utc.isoformat(),
            )
            return self.db.get_history(user_id, window.start_utc), False
        return row, True

    def current_week(self) -> WeekWindow:
        return self.calendar.window_for(self.clock())

    def get(self, user_id: str, week_start_utc: datetime) -> WeeklyHoursHistory | None:
        return self.db.get_history(user_id, week_start_utc)

    def list_history(
        self,
        *,
        user_id: str | None = None,
        since: WeekWindow | None = None,
        until: WeekWindow | None = None,
    ) -> list[WeeklyHoursHistory]:
        """Rows newest week first; ``since``/``until`` bound the range by week, inclusive."""
        return self.db.list_history(
            user_id=user_id,
            week_start_from_utc=since.start_utc if since else None,
            week_start_before_utc=until.end_utc if until else None,
        )

    def for_week(self, window: WeekWindow) -> list[WeeklyHoursHistory]:
        return self.db.list_history(
            week_start_from_utc=window.start_utc,
            week_start_before_utc=window.end_utc,
            order_by_hours=True,
        )

    def for_user(self, user_id: str, weeks: int = 12) -> list[WeeklyHoursHistory]:
        return self.db.list_history(user_id=user_id, limit=weeks)

    def week_totals(self, window: WeekWindow) -> WeekTotals:
        rows = self.for_week(window)
        return WeekTotals(
            window=window,
            total_hours=sum(row.total_hours for row in rows),
            user_count=len(rows),
            top_users=rows[:TOP_USERS],
        )

    def weekly_stats(self, reference: datetime | None = None, previous_weeks: int = 4) -> list[WeekTotals]:
        """Totals for the week containing ``reference`` followed by the preceding weeks."""
        current = self.calendar.window_for(reference) if reference else self.current_week()
        windows = [current] + [self.calendar.previous(current, n) for n in range(1, previous_weeks + 1)]
        return [self.week_totals(window) for window in windows]
