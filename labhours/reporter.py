from __future__ import annotations

from typing import Protocol

import discord

from .models import RolloverReport, ScheduleSummary, WeeklyHoursHistory, WeekWindow, WorkSession
from .rollover import SchedulerStatus
from .schedule import day_name
from .week import WeekCalendar


def format_duration(total_seconds: int) -> str:
    """Render a duration as ``Xh Ym``."""
    safe_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(safe_seconds, 3600)
    return f"{hours}h {remainder // 60}m"


def format_hours(hours: float) -> str:
    return f"{hours:.1f}h"


class ReportChannelLike(Protocol):
    async def send(self, content: str, **kwargs): ...


class Reporter:
    def __init__(self, calendar: WeekCalendar) -> None:
        self.calendar = calendar

    def week_label(self, window: WeekWindow) -> str:
        first = self.calendar.local_start_day(window)
        last = self.calendar.local_last_day(window)
        return f"{first.isoformat()} to {last.isoformat()}"

    def build_rollover_content(self, report: RolloverReport) -> str:
        title = "Weekly Hours Rollover" if report.reset_counters else "Weekly History Backfill"
        header = f"**{title} - {self.week_label(report.window)}**"

        lines = [header]
        if report.archived:
            archived = sorted(report.archived, key=lambda item: (-item.hours_archived, item.user_name.lower()))
            lines.extend(f"- {item.user_name}: `{format_hours(item.hours_archived)}`" for item in archived)
            lines.append(f"Total archived: `{format_hours(report.total_hours)}`")
        else:
            lines.append("No new weekly archives.")

        if report.failed:
            names = ", ".join(item.user_name for item in report.failed)
            lines.append(f"Failed for {len(report.failed)} user(s): {names}")
        return "\n".join(lines)

    def build_history_content(self, window: WeekWindow, rows: list[WeeklyHoursHistory]) -> str:
        header = f"**Weekly Hours - {self.week_label(window)}**"
        if not rows:
            return f"{header}\nNo archived hours for this week."

        body = "\n".join(f"- {row.user_name}: `{format_hours(row.total_hours)}`" for row in rows)
        return f"{header}\n{body}"

    def build_status_content(self, status: SchedulerStatus) -> str:
        next_run = status.next_run_at.isoformat() if status.next_run_at else "not scheduled"
        last_run = status.last_run_at.isoformat() if status.last_run_at else "never"
        lines = [
            f"Rollover scheduler: {'running' if status.running else 'stopped'}",
            f"Schedule: {status.schedule}",
            f"Timezone: `{status.timezone}`",
            f"Next run: `{next_run}`",
            f"Last rollover: `{last_run}`",
        ]
        return "\n".join(lines)

    def build_session_content(self, session: WorkSession) -> str:
        started = session.started_at_utc.astimezone(self.calendar.tz).strftime("%Y-%m-%d %H:%M")
        line = f"Session #{session.id} ({session.status}) started {started}"
        if session.duration_seconds is not None:
            line += f", tracked `{format_duration(session.duration_seconds)}`"
        if session.activity:
            line += f" - {session.activity}"
        return line

    def build_schedule_content(self, summary: ScheduleSummary) -> str:
        header = (
            f"**Schedule for {summary.user_name}** "
            f"({summary.scheduled_hours:g}h of {summary.week_hours:g}h, {summary.remaining_hours:g}h left)"
        )
        if not summary.entries:
            return f"{header}\nNo schedule entries."

        body = "\n".join(
            f"- #{entry.id} {day_name(entry.day_of_week)}: {entry.start_time}-{entry.end_time}"
            for entry in summary.entries
        )
        return f"{header}\n{body}"

    async def post_rollover_report(self, report_channel: ReportChannelLike, report: RolloverReport) -> bool:
        content = self.build_rollover_content(report)
        # Never ping users in automated summaries.
        await report_channel.send(content, allowed_mentions=discord.AllowedMentions.none())
        return True
