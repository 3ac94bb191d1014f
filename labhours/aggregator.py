from __future__ import annotations

from .db import Database
from .models import ProjectHours, UserSeconds, WeekWindow


class HourAggregator:
    """Sums completed sessions only; open sessions are still changing and never counted."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def sum_duration(self, user_id: str, window: WeekWindow, project_id: int | None = None) -> int:
        return self.db.sum_completed_seconds(
            user_id,
            window.start_utc,
            window.end_utc,
            project_id=project_id,
        )

    def sum_hours(self, user_id: str, window: WeekWindow, project_id: int | None = None) -> float:
        return self.sum_duration(user_id, window, project_id) / 3600

    def project_hours(self, project_id: int, window: WeekWindow | None = None) -> ProjectHours:
        sessions = self.db.list_completed_sessions(
            project_id=project_id,
            start_utc=window.start_utc if window else None,
            end_utc=window.end_utc if window else None,
        )

        totals: dict[str, int] = {}
        names: dict[str, str] = {}
        for session in sessions:
            totals[session.user_id] = totals.get(session.user_id, 0) + (session.duration_seconds or 0)
            names.setdefault(session.user_id, session.user_name)

        by_user = [
            UserSeconds(user_id=user_id, user_name=names[user_id], seconds=seconds)
            for user_id, seconds in totals.items()
        ]
        by_user.sort(key=lambda item: (-item.seconds, item.user_name.lower()))
        return ProjectHours(
            project_id=project_id,
            total_seconds=sum(totals.values()),
            session_count=len(sessions),
            by_user=by_user,
        )
