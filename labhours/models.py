from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


ACTIVE = "active"
PAUSED = "paused"
COMPLETED = "completed"
OPEN_STATUSES = (ACTIVE, PAUSED)


@dataclass(frozen=True, slots=True)
class WeekWindow:
    """Half-open accounting interval [start_utc, end_utc)."""

    start_utc: datetime
    end_utc: datetime

    def contains(self, value: datetime) -> bool:
        return self.start_utc <= value < self.end_utc


@dataclass(frozen=True, slots=True)
class UserAccount:
    user_id: str
    name: str
    week_hours: float
    current_week_hours: float
    status: str


@dataclass(frozen=True, slots=True)
class WorkSession:
    id: int
    user_id: str
    user_name: str
    started_at_utc: datetime
    ended_at_utc: datetime | None
    duration_seconds: int | None
    activity: str | None
    location: str | None
    project_id: int | None
    status: str

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


@dataclass(frozen=True, slots=True)
class WeeklyHoursHistory:
    id: int
    user_id: str
    user_name: str
    week_start_utc: datetime
    week_end_utc: datetime
    total_hours: float


@dataclass(frozen=True, slots=True)
class ScheduleEntry:
    user_id: str
    day_of_week: int
    start_time: str
    end_time: str
    id: int | None = None


@dataclass(frozen=True, slots=True)
class ArchivedUser:
    user_id: str
    user_name: str
    hours_archived: float


@dataclass(frozen=True, slots=True)
class FailedUser:
    user_id: str
    user_name: str
    error: str


@dataclass(frozen=True, slots=True)
class RolloverReport:
    window: WeekWindow
    ran_at_utc: datetime
    reset_counters: bool
    processed: list[str] = field(default_factory=list)
    archived: list[ArchivedUser] = field(default_factory=list)
    failed: list[FailedUser] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return sum(item.hours_archived for item in self.archived)


@dataclass(frozen=True, slots=True)
class UserSeconds:
    user_id: str
    user_name: str
    seconds: int


@dataclass(frozen=True, slots=True)
class ProjectHours:
    project_id: int
    total_seconds: int
    session_count: int
    by_user: list[UserSeconds]


@dataclass(frozen=True, slots=True)
class WeekTotals:
    window: WeekWindow
    total_hours: float
    user_count: int
    top_users: list[WeeklyHoursHistory] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScheduleSummary:
    user_id: str
    user_name: str
    week_hours: float
    scheduled_hours: float
    remaining_hours: float
    entries: list[ScheduleEntry]
