from typing import Callable

import discord
from discord import app_commands

from .actions import CREATE_WEEK_HISTORY, MANUAL_RESET, parse_week_date
from .errors import HoursError, NotFoundError
from .models import ScheduleEntry
from .reporter import format_hours


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    async def respond(interaction: discord.Interaction, build: Callable[[], str]) -> None:
        # Domain errors become a short reply; anything else is logged and reported generically.
        try:
            content = build()
        except HoursError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        except Exception:
            bot.logger.exception("/%s failed", interaction.command.name if interaction.command else "?")
            await interaction.response.send_message("Something went wrong. Check the bot logs.", ephemeral=True)
            return
        await interaction.response.send_message(content, ephemeral=True)

    def is_manager(interaction: discord.Interaction) -> bool:
        return bool(interaction.permissions and interaction.permissions.manage_guild)

    def owned_schedule(interaction: discord.Interaction, schedule_id: int) -> ScheduleEntry:
        entry = bot.schedules.get(schedule_id)
        if entry.user_id != str(interaction.user.id) and not is_manager(interaction):
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return entry

    def open_session_id(user_id: str) -> int:
        session = bot.tracker.active_for(user_id)
        if session is None:
            raise NotFoundError("You have no open work session.")
        return session.id

    @bot.tree.command(name="hours-status", description="Show the weekly rollover schedule", guild=guild_scope)
    async def hours_status(interaction: discord.Interaction):
        await respond(interaction, lambda: bot.reporter.build_status_content(bot.rollover_scheduler.status()))

    @bot.tree.command(name="hours-reset", description="Archive this week and reset counters now", guild=guild_scope)
    @app_commands.default_permissions(manage_guild=True)
    async def hours_reset(interaction: discord.Interaction):
        def run() -> str:
            result = bot.actions.dispatch({"action": MANUAL_RESET})
            lines = [f"Manual reset done. Archived {len(result['results'])} user(s)."]
            lines.extend(f"- {item['userName']}: `{format_hours(item['hoursArchived'])}`" for item in result["results"])
            if result["failed"]:
                lines.append(f"Failed: {', '.join(item['userName'] for item in result['failed'])}")
            return "\n".join(lines)

        await respond(interaction, run)

    @bot.tree.command(name="hours-backfill", description="Create missing archives for an elapsed week", guild=guild_scope)
    @app_commands.describe(week_start="Any date inside the week, YYYY-MM-DD")
    @app_commands.default_permissions(manage_guild=True)
    async def hours_backfill(interaction: discord.Interaction, week_start: str):
        def run() -> str:
            result = bot.actions.dispatch({"action": CREATE_WEEK_HISTORY, "weekStart": week_start})
            return f"Backfill done for week starting `{result['weekStart']}`: {len(result['results'])} new archive(s)."

        await respond(interaction, run)

    @bot.tree.command(name="hours-history", description="Show archived hours for a week", guild=guild_scope)
    @app_commands.describe(week_start="Any date inside the week, YYYY-MM-DD (defaults to this week)")
    async def hours_history(interaction: discord.Interaction, week_start: str | None = None):
        def run() -> str:
            if week_start:
                window = bot.calendar.window_containing_day(parse_week_date(week_start))
            else:
                window = bot.snapshots.current_week()
            return bot.reporter.build_history_content(window, bot.snapshots.for_week(window))

        await respond(interaction, run)

    @bot.tree.command(name="hours-budget", description="Set a member's weekly hour budget", guild=guild_scope)
    @app_commands.default_permissions(manage_guild=True)
    async def hours_budget(interaction: discord.Interaction, member: discord.Member, hours: app_commands.Range[float, 1, 168]):
        def run() -> str:
            bot.register_member(member)
            bot.db.set_week_hours(str(member.id), hours)
            return f"Weekly budget for {member.display_name} set to `{hours:g}h`."

        await respond(interaction, run)

    @bot.tree.command(name="session-start", description="Start a work session", guild=guild_scope)
    async def session_start(interaction: discord.Interaction, activity: str | None = None, location: str | None = None):
        def run() -> str:
            bot.register_member(interaction.user)
            session = bot.tracker.start(str(interaction.user.id), activity=activity, location=location)
            return bot.reporter.build_session_content(session)

        await respond(interaction, run)

    @bot.tree.command(name="session-pause", description="Pause your open work session", guild=guild_scope)
    async def session_pause(interaction: discord.Interaction):
        def run() -> str:
            user_id = str(interaction.user.id)
            return bot.reporter.build_session_content(bot.tracker.pause(open_session_id(user_id), user_id))

        await respond(interaction, run)

    @bot.tree.command(name="session-resume", description="Resume your paused work session", guild=guild_scope)
    async def session_resume(interaction: discord.Interaction):
        def run() -> str:
            user_id = str(interaction.user.id)
            return bot.reporter.build_session_content(bot.tracker.resume(open_session_id(user_id), user_id))

        await respond(interaction, run)

    @bot.tree.command(name="session-stop", description="Stop your open work session", guild=guild_scope)
    async def session_stop(interaction: discord.Interaction):
        def run() -> str:
            user_id = str(interaction.user.id)
            return bot.reporter.build_session_content(bot.tracker.stop(open_session_id(user_id), user_id))

        await respond(interaction, run)

    @bot.tree.command(name="schedule-add", description="Add a recurring weekly slot", guild=guild_scope)
    @app_commands.describe(day="0 = Sunday ... 6 = Saturday", start="HH:MM", end="HH:MM")
    async def schedule_add(interaction: discord.Interaction, day: int, start: str, end: str):
        def run() -> str:
            bot.register_member(interaction.user)
            created = bot.actions.create_schedule(
                {"userId": str(interaction.user.id), "dayOfWeek": day, "startTime": start, "endTime": end}
            )
            return f"Added schedule #{created['id']}."

        await respond(interaction, run)

    @bot.tree.command(name="schedule-update", description="Change a recurring weekly slot", guild=guild_scope)
    @app_commands.describe(day="0 = Sunday ... 6 = Saturday", start="HH:MM", end="HH:MM")
    async def schedule_update(
        interaction: discord.Interaction,
        schedule_id: int,
        day: int | None = None,
        start: str | None = None,
        end: str | None = None,
    ):
        def run() -> str:
            owned_schedule(interaction, schedule_id)
            bot.actions.update_schedule(schedule_id, {"dayOfWeek": day, "startTime": start, "endTime": end})
            return f"Updated schedule #{schedule_id}."

        await respond(interaction, run)

    @bot.tree.command(name="schedule-remove", description="Remove a recurring weekly slot", guild=guild_scope)
    async def schedule_remove(interaction: discord.Interaction, schedule_id: int):
        def run() -> str:
            owned_schedule(interaction, schedule_id)
            bot.actions.delete_schedule(schedule_id)
            return f"Removed schedule #{schedule_id}."

        await respond(interaction, run)

    @bot.tree.command(name="schedule-list", description="Show a weekly schedule", guild=guild_scope)
    async def schedule_list(interaction: discord.Interaction, member: discord.Member | None = None):
        def run() -> str:
            target = member or interaction.user
            if member is None:
                bot.register_member(target)
            return bot.reporter.build_schedule_content(bot.schedules.weekly_summary(str(target.id)))

        await respond(interaction, run)
