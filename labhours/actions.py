from __future__ import annotations

from datetime import date, datetime
from typing import Any

from .errors import ValidationError
from .models import RolloverReport, ScheduleEntry
from .rollover import RolloverEngine, RolloverScheduler
from .schedule import ScheduleService

MANUAL_RESET = "manual-reset"
CREATE_WEEK_HISTORY = "create_week_history"


def parse_week_date(value: Any) -> date:
    """Accept ``YYYY-MM-DD`` or an ISO timestamp; only the calendar date is used."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("weekStart is required")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as exc:
        raise ValidationError(f"weekStart must be an ISO date: {value!r}") from exc


def _required(payload: dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} is required")
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return None if value is None else str(value)


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer") from exc


def report_payload(report: RolloverReport) -> dict[str, Any]:
    return {
        "weekStart": report.window.start_utc.isoformat(),
        "weekEnd": report.window.end_utc.isoformat(),
        "results": [
            {"userId": item.user_id, "userName": item.user_name, "hoursArchived": item.hours_archived}
            for item in report.archived
        ],
        "processed": list(report.processed),
        "failed": [
            {"userId": item.user_id, "userName": item.user_name, "error": item.error}
            for item in report.failed
        ],
    }


def schedule_payload(entry: ScheduleEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "userId": entry.user_id,
        "dayOfWeek": entry.day_of_week,
        "startTime": entry.start_time,
        "endTime": entry.end_time,
    }


class HoursActions:
    """Caller-facing operations: scheduler status, rollover actions and schedule CRUD."""

    def __init__(self, engine: RolloverEngine, scheduler: RolloverScheduler, schedules: ScheduleService) -> None:
        self.engine = engine
        self.scheduler = scheduler
        self.schedules = schedules

    def status(self) -> dict[str, Any]:
        status = self.scheduler.status()
        return {
            "running": status.running,
            "nextRunAt": status.next_run_at.isoformat() if status.next_run_at else None,
            "schedule": status.schedule,
            "timezone": status.timezone,
            "lastRunAt": status.last_run_at.isoformat() if status.last_run_at else None,
        }

    def dispatch(self, payload: dict[str, Any]) -> dict[str, Any]:
        action = payload.get("action")
        if action == MANUAL_RESET:
            report = self.scheduler.run_manual()
            return {"message": "Manual reset completed", **report_payload(report)}

        if action == CREATE_WEEK_HISTORY:
            week_start = parse_week_date(payload.get("weekStart"))
            report = self.engine.create_history_for_week(week_start)
            return {"message": "Weekly history created", **report_payload(report)}

        raise ValidationError(f"Unknown action: {action!r}")

    def create_schedule(self, payload: dict[str, Any]) -> dict[str, Any]:
        entry = self.schedules.create(
            user_id=str(_required(payload, "userId")),
            day_of_week=_as_int(_required(payload, "dayOfWeek"), "dayOfWeek"),
            start_time=str(_required(payload, "startTime")),
            end_time=str(_required(payload, "endTime")),
        )
        return schedule_payload(entry)

    def update_schedule(self, schedule_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        day = payload.get("dayOfWeek")
        entry = self.schedules.update(
            schedule_id,
            day_of_week=None if day is None else _as_int(day, "dayOfWeek"),
            start_time=_optional_str(payload, "startTime"),
            end_time=_optional_str(payload, "endTime"),
        )
        return schedule_payload(entry)

    def delete_schedule(self, schedule_id: int) -> dict[str, Any]:
        self.schedules.delete(schedule_id)
        return {"success": True}
