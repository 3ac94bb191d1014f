from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable

from .db import Database
from .errors import CapacityExceededError, NotFoundError, ValidationError
from .models import ScheduleEntry, ScheduleSummary, UserAccount

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def parse_hhmm(value: str) -> int:
    """Return minutes after midnight for an ``HH:MM`` wall-clock value."""
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValidationError(f"Time must use the HH:MM format: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def entry_minutes(entry: ScheduleEntry) -> int:
    return parse_hhmm(entry.end_time) - parse_hhmm(entry.start_time)


def day_name(day_of_week: int) -> str:
    if 0 <= day_of_week <= 6:
        return DAY_NAMES[day_of_week]
    return "Invalid day"


class ScheduleCapacityValidator:
    """Checks a recurring entry against the user's weekly hour budget."""

    def validate(
        self,
        entry: ScheduleEntry,
        existing_entries: Iterable[ScheduleEntry],
        budget_hours: float,
        excluding_entry_id: int | None = None,
    ) -> None:
        start = parse_hhmm(entry.start_time)
        end = parse_hhmm(entry.end_time)
        if end <= start:
            raise ValidationError("Start time must be before end time")

        if not 0 <= entry.day_of_week <= 6:
            raise ValidationError("Day of week must be between 0 (Sunday) and 6 (Saturday)")

        # An update is measured against the other entries, never its own old footprint.
        total_minutes = sum(
            entry_minutes(other)
            for other in existing_entries
            if excluding_entry_id is None or other.id != excluding_entry_id
        )
        total_minutes += end - start

        requested = total_minutes / 60
        if requested > budget_hours:
            raise CapacityExceededError(requested_hours=requested, budget_hours=budget_hours)


class ScheduleService:
    """Schedule CRUD where every write passes the capacity validator first."""

    def __init__(
        self,
        db: Database,
        validator: ScheduleCapacityValidator | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.validator = validator or ScheduleCapacityValidator()
        self.logger = logger or logging.getLogger(__name__)

    def create(self, user_id: str, day_of_week: int, start_time: str, end_time: str) -> ScheduleEntry:
        user = self._active_user(user_id)
        entry = ScheduleEntry(
            user_id=user_id,
            day_of_week=day_of_week,
            start_time=start_time.strip(),
            end_time=end_time.strip(),
        )
        self.validator.validate(entry, self.db.list_schedules(user_id), user.week_hours)

        created = self.db.insert_schedule(entry)
        self.logger.info(
            "Schedule created: user=%s id=%s %s %s-%s",
            user_id,
            created.id,
            day_name(created.day_of_week),
            created.start_time,
            created.end_time,
        )
        return created

    def update(
        self,
        schedule_id: int,
        *,
        day_of_week: int | None = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> ScheduleEntry:
        current = self.get(schedule_id)
        user = self._active_user(current.user_id)

        proposed = replace(
            current,
            day_of_week=current.day_of_week if day_of_week is None else day_of_week,
            start_time=current.start_time if start_time is None else str(start_time).strip(),
            end_time=current.end_time if end_time is None else str(end_time).strip(),
        )
        self.validator.validate(
            proposed,
            self.db.list_schedules(current.user_id),
            user.week_hours,
            excluding_entry_id=schedule_id,
        )

        updated = self.db.update_schedule(proposed)
        if updated is None:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        self.logger.info("Schedule updated: user=%s id=%s", current.user_id, schedule_id)
        return updated

    def delete(self, schedule_id: int) -> None:
        if not self.db.delete_schedule(schedule_id):
            raise NotFoundError(f"Schedule {schedule_id} not found")
        self.logger.info("Schedule deleted: id=%s", schedule_id)

    def get(self, schedule_id: int) -> ScheduleEntry:
        entry = self.db.get_schedule(schedule_id)
        if entry is None:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return entry

    def list_for_user(self, user_id: str | None = None) -> list[ScheduleEntry]:
        return self.db.list_schedules(user_id)

    def weekly_summary(self, user_id: str) -> ScheduleSummary:
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        entries = self.db.list_schedules(user_id)
        scheduled = sum(entry_minutes(entry) for entry in entries) / 60
        return ScheduleSummary(
            user_id=user_id,
            user_name=user.name,
            week_hours=user.week_hours,
            scheduled_hours=round(scheduled, 2),
            remaining_hours=round(user.week_hours - scheduled, 2),
            entries=entries,
        )

    def _active_user(self, user_id: str) -> UserAccount:
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.status != "active":
            raise ValidationError(f"User {user_id} is not active")
        return user
