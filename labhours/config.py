from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .week import parse_week_start

DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_WEEK_START = "monday"
CRON_DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    report_channel_id: int
    timezone: ZoneInfo
    week_start: int
    rollover_cron: str
    default_week_hours: float
    database_path: Path


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _required_int_env(name: str) -> int:
    value = _required_env(name)
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _timezone_from_env(name: str, default: str) -> ZoneInfo:
    tz_name = os.getenv(name, default).strip()
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def validate_cron(expression: str) -> str:
    """Check a 5-field crontab expression whose day-of-week field uses names."""
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression: {expression}")

    # APScheduler numbers weekdays from Monday=0, crontab from Sunday=0.
    for token in parts[4].replace("-", ",").split(","):
        if token != "*" and token.lower() not in CRON_DAY_NAMES:
            raise ValueError(f"Cron day-of-week must use names (mon..sun): {expression}")
    return " ".join(parts)


def default_rollover_cron(week_start: int) -> str:
    """Run at 23:59 on the last local day of the configured week."""
    return f"59 23 * * {CRON_DAY_NAMES[(week_start - 1) % 7]}"


def check_rollover_day(expression: str, week_start: int) -> str:
    # A run on any other day archives the week that has just started.
    last_day = CRON_DAY_NAMES[(week_start - 1) % 7]
    if expression.split()[4].lower() != last_day:
        raise ValueError(
            f"ROLLOVER_CRON must fire only on the last day of the week ('{last_day}'): {expression}"
        )
    return expression


def load_config() -> Config:
    try:
        week_start = parse_week_start(os.getenv("WEEK_START_DAY", DEFAULT_WEEK_START))
    except ValueError as exc:
        raise ValueError(f"Invalid WEEK_START_DAY: {exc}") from exc

    hours_raw = os.getenv("DEFAULT_WEEK_HOURS", "20").strip()
    try:
        default_week_hours = float(hours_raw)
    except ValueError as exc:
        raise ValueError("DEFAULT_WEEK_HOURS must be a number") from exc

    if default_week_hours <= 0:
        raise ValueError("DEFAULT_WEEK_HOURS must be positive")

    cron_raw = os.getenv("ROLLOVER_CRON", "").strip() or default_rollover_cron(week_start)
    rollover_cron = check_rollover_day(validate_cron(cron_raw), week_start)

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        report_channel_id=_required_int_env("REPORT_CHANNEL_ID"),
        timezone=_timezone_from_env("TIMEZONE", DEFAULT_TIMEZONE),
        week_start=week_start,
        rollover_cron=rollover_cron,
        default_week_hours=default_week_hours,
        database_path=Path(os.getenv("DATABASE_PATH", "labhours.db").strip()),
    )
