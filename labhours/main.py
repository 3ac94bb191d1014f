from __future__ import annotations

import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .actions import HoursActions
from .aggregator import HourAggregator
from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .models import RolloverReport, UserAccount
from .reporter import Reporter
from .rollover import RolloverEngine, RolloverScheduler
from .schedule import ScheduleService
from .snapshots import WeeklySnapshotStore
from .tracker import WorkSessionTracker
from .week import WeekCalendar


class HoursBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.logger = logging.getLogger("labhours-bot")

        self.calendar = WeekCalendar(config.timezone, config.week_start)
        self.tracker = WorkSessionTracker(db)
        self.aggregator = HourAggregator(db)
        self.snapshots = WeeklySnapshotStore(db, self.calendar)
        self.engine = RolloverEngine(db, self.calendar, self.aggregator, self.snapshots)
        self.schedules = ScheduleService(db)
        self.rollover_scheduler = RolloverScheduler(
            self.engine,
            config.rollover_cron,
            config.timezone,
            on_complete=self.post_rollover_report,
        )
        self.actions = HoursActions(self.engine, self.rollover_scheduler, self.schedules)
        self.reporter = Reporter(self.calendar)

        self.report_channel: discord.TextChannel | None = None

    async def setup_hook(self) -> None:
        # Register slash commands during startup and begin the weekly rollover schedule.
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self.rollover_scheduler.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.report_channel is not None:
            return

        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            return

        report = guild.get_channel(self.config.report_channel_id)
        if not isinstance(report, discord.TextChannel):
            # Rollovers still run; only the posted summary is skipped.
            self.logger.error("Report channel %s is missing or not a text channel", self.config.report_channel_id)
            return

        self.report_channel = report
        self.logger.info("Rollover reports will be posted to #%s", report.name)

    def register_member(self, member: discord.abc.User) -> UserAccount:
        return self.db.ensure_user(str(member.id), member.display_name, self.config.default_week_hours)

    async def post_rollover_report(self, report: RolloverReport) -> None:
        if self.report_channel is None:
            self.logger.warning("Report channel unavailable; skipping rollover report")
            return
        await self.reporter.post_rollover_report(self.report_channel, report)

    async def close(self) -> None:
        self.rollover_scheduler.stop()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.database_path)
    db.initialize()

    bot = HoursBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
