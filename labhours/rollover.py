from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .aggregator import HourAggregator
from .db import Database
from .errors import ValidationError
from .models import ArchivedUser, FailedUser, RolloverReport, UserAccount, WeekWindow
from .snapshots import WeeklySnapshotStore
from .tracker import utc_now
from .week import WeekCalendar

LAST_ROLLOVER_META_KEY = "last_rollover_at_utc"
ROLLOVER_JOB_ID = "weekly-rollover"
CRON_DAY_LABELS = {
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
    "sun": "Sunday",
}


class RolloverEngine:
    """Archive each active user's week once, then zero the running counter."""

    def __init__(
        self,
        db: Database,
        calendar: WeekCalendar,
        aggregator: HourAggregator | None = None,
        snapshots: WeeklySnapshotStore | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.calendar = calendar
        self.aggregator = aggregator or HourAggregator(db)
        self.snapshots = snapshots or WeeklySnapshotStore(db, calendar, clock=clock)
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def perform_rollover(self, reference: datetime | None = None) -> RolloverReport:
        window = self.calendar.window_for(reference or self.clock())
        report = self._archive_window(window, reset_counters=True)
        self.db.set_meta(LAST_ROLLOVER_META_KEY, report.ran_at_utc.isoformat())
        return report

    def create_history_for_week(self, week_start: date) -> RolloverReport:
        """Backfill the archive of an elapsed week without touching running counters."""
        window = self.calendar.window_containing_day(week_start)
        if window.end_utc > self.clock():
            raise ValidationError(f"Week starting {week_start.isoformat()} has not ended yet")
        return self._archive_window(window, reset_counters=False)

    def last_run_at(self) -> datetime | None:
        value = self.db.get_meta(LAST_ROLLOVER_META_KEY)
        if value is None:
            return None
        return datetime.fromisoformat(value)

    def _archive_window(self, window: WeekWindow, *, reset_counters: bool) -> RolloverReport:
        ran_at = self.clock()
        processed: list[str] = []
        archived: list[ArchivedUser] = []
        failed: list[FailedUser] = []

        for user in self.db.list_active_users():
            try:
                outcome = self._archive_user(user, window, reset_counters)
            except Exception as exc:
                # One user's failure never aborts the batch.
                self.logger.exception("Rollover failed for user=%s", user.user_id)
                failed.append(FailedUser(user_id=user.user_id, user_name=user.name, error=str(exc)))
                continue

            processed.append(user.user_id)
            if outcome is not None:
                archived.append(outcome)

        self.logger.info(
            "Rollover for week %s: processed=%d archived=%d failed=%d reset=%s",
            window.start_utc.isoformat(),
            len(processed),
            len(archived),
            len(failed),
            reset_counters,
        )
        return RolloverReport(
            window=window,
            ran_at_utc=ran_at,
            reset_counters=reset_counters,
            processed=processed,
            archived=archived,
            failed=failed,
        )

    def _archive_user(self, user: UserAccount, window: WeekWindow, reset_counters: bool) -> ArchivedUser | None:
        seconds = self.aggregator.sum_duration(user.user_id, window)
        hours = seconds / 3600
        row, created = self.snapshots.create_if_absent(user.user_id, user.name, window, hours)

        if reset_counters:
            self.db.reset_current_week_hours(user.user_id)

        if not created or row is None:
            return None

        self.logger.info("Archived %.2fh for user=%s", row.total_hours, user.user_id)
        return ArchivedUser(user_id=user.user_id, user_name=user.name, hours_archived=row.total_hours)


@dataclass(frozen=True, slots=True)
class SchedulerStatus:
    running: bool
    next_run_at: datetime | None
    schedule: str
    timezone: str
    last_run_at: datetime | None


def build_trigger(expression: str, tz: ZoneInfo) -> CronTrigger:
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression: {expression}")
    return CronTrigger(
        minute=parts[0], hour=parts[1],
        day=parts[2], month=parts[3],
        day_of_week=parts[4], timezone=tz,
    )


def describe_cron(expression: str, tz: ZoneInfo) -> str:
    minute, hour, day, month, day_of_week = expression.split()
    if day == "*" and month == "*" and minute.isdigit() and hour.isdigit():
        if day_of_week == "*":
            days = "day"
        else:
            labels = [CRON_DAY_LABELS.get(token.lower(), token) for token in day_of_week.split(",")]
            days = ", ".join(labels)
        return f"Every {days} at {int(hour):02}:{int(minute):02} ({tz.key})"
    return f"cron '{expression}' ({tz.key})"


class RolloverScheduler:
    """Owns the single recurring rollover job; explicit start/stop lifecycle."""

    def __init__(
        self,
        engine: RolloverEngine,
        cron_expression: str,
        tz: ZoneInfo,
        *,
        scheduler: AsyncIOScheduler | None = None,
        on_complete: Callable[[RolloverReport], Awaitable[None]] | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.cron_expression = cron_expression
        self.tz = tz
        self.trigger = build_trigger(cron_expression, tz)
        self.on_complete = on_complete
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self.tz)

        self._scheduler.add_job(
            self.run_scheduled,
            self.trigger,
            id=ROLLOVER_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        if self._owns_scheduler:
            self._scheduler.start()

        self._started = True
        self.logger.info("Rollover scheduled: %s", self.describe())

    def stop(self) -> None:
        if not self._started:
            return

        if self._scheduler.get_job(ROLLOVER_JOB_ID) is not None:
            self._scheduler.remove_job(ROLLOVER_JOB_ID)
        if self._owns_scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._started = False
        self.logger.info("Rollover schedule stopped")

    def next_run_at(self) -> datetime | None:
        if not self._started:
            return None
        job = self._scheduler.get_job(ROLLOVER_JOB_ID)
        next_run = getattr(job, "next_run_time", None) if job is not None else None
        if next_run is None:
            next_run = self.trigger.get_next_fire_time(None, self.clock())
        return next_run

    def describe(self) -> str:
        return describe_cron(self.cron_expression, self.tz)

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self.is_running,
            next_run_at=self.next_run_at(),
            schedule=self.describe(),
            timezone=self.tz.key,
            last_run_at=self.engine.last_run_at(),
        )

    def run_manual(self) -> RolloverReport:
        self.logger.info("Manual rollover requested")
        return self.engine.perform_rollover(self.clock())

    async def run_scheduled(self) -> RolloverReport:
        report = self.engine.perform_rollover(self.clock())
        if self.on_complete is not None:
            try:
                await self.on_complete(report)
            except Exception:  # pragma: no cover - runtime safety
                self.logger.exception("Rollover completion callback failed")
        return report
