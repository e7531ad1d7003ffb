"""Discord bot for eventsmode.

Runs alongside FastAPI using the same event loop. Slash commands and the
start-event button are routed through ``dispatch.COMMAND_HANDLERS``; audit
messages published on the EventBus are forwarded to each guild's log channel.

Without DISCORD_BOT_TOKEN (or in development) the bot never starts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

import discord
from discord import Intents, app_commands
from discord.ext import commands
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from eventsmode.core.audit import EventBusAuditSink
from eventsmode.core.event_bus import AUDIT_MESSAGE
from eventsmode.core.lifecycle import EventLifecycle
from eventsmode.discord.dispatch import dispatch_command
from eventsmode.discord.embeds import build_audit_embed
from eventsmode.discord.helpers import db_session, store_scope
from eventsmode.discord.views import StartEventView
from eventsmode.models.event import EDITABLE_EVENT_FIELDS

if TYPE_CHECKING:
    from eventsmode.config import Settings
    from eventsmode.core.event_bus import EventBus

logger = logging.getLogger(__name__)


class EventsmodeBot(commands.Bot):
    """The eventsmode Discord bot.

    Runs in-process with FastAPI. Owns the ``EventLifecycle`` used by the
    start button and close commands, and listens on the EventBus for audit
    messages.
    """

    def __init__(
        self,
        settings: Settings,
        event_bus: EventBus,
        engine: AsyncEngine | None = None,
        lifecycle: EventLifecycle | None = None,
    ) -> None:
        intents = Intents.default()
        intents.members = True  # Ban overwrites resolve members by id

        super().__init__(
            command_prefix="!",
            intents=intents,
            description="Eventsmode: event hosting, salaries and event bans.",
        )
        self.settings = settings
        self.event_bus = event_bus
        self.engine = engine
        if lifecycle is None and engine is not None:
            lifecycle = EventLifecycle(
                store_scope(engine),
                EventBusAuditSink(event_bus),
                selection_timeout_seconds=settings.eventsmode_selection_timeout_seconds,
                voice_user_limit=settings.eventsmode_voice_user_limit,
            )
        self.lifecycle = lifecycle
        self._event_listener_task: asyncio.Task[None] | None = None
        self._setup_commands()

    async def route_command(
        self, command_id: str, interaction: discord.Interaction, **options: Any
    ) -> None:
        await dispatch_command(self, command_id, interaction, **options)

    def _setup_commands(self) -> None:
        """Register slash command groups on the bot's command tree."""
        event_group = app_commands.Group(name="event", description="Manage and run events")
        ban_group = app_commands.Group(name="eventban", description="Ban users from events")
        staff_group = app_commands.Group(name="eventsmode", description="Manage eventsmodes")

        @event_group.command(name="start", description="Post the start-event panel here")
        async def event_start(interaction: discord.Interaction) -> None:
            await self.route_command("event.start", interaction)

        @event_group.command(name="add", description="Add an event to the catalog")
        async def event_add(interaction: discord.Interaction) -> None:
            await self.route_command("event.add", interaction)

        @event_group.command(name="list", description="List the event catalog")
        async def event_list(interaction: discord.Interaction) -> None:
            await self.route_command("event.list", interaction)

        @event_group.command(name="edit", description="Change one field of an event")
        @app_commands.describe(
            category="Category of the event",
            name="Name of the event",
            field="Field to change",
            value="New value",
        )
        @app_commands.choices(
            field=[app_commands.Choice(name=f, value=f) for f in EDITABLE_EVENT_FIELDS]
        )
        async def event_edit(
            interaction: discord.Interaction,
            category: str,
            name: str,
            field: app_commands.Choice[str],
            value: str,
        ) -> None:
            await self.route_command(
                "event.edit",
                interaction,
                category=category,
                name=name,
                field=field.value,
                value=value,
            )

        @event_group.command(name="remove", description="Remove an event from the catalog")
        @app_commands.describe(category="Category of the event", name="Name of the event")
        async def event_remove(interaction: discord.Interaction, category: str, name: str) -> None:
            await self.route_command("event.remove", interaction, category=category, name=name)

        @event_group.command(name="close", description="Close a user's running event")
        @app_commands.describe(user="The eventsmode whose event to close")
        async def event_close(interaction: discord.Interaction, user: discord.Member) -> None:
            await self.route_command("event.close", interaction, user=user)

        @event_group.command(name="finish", description="Finish your running event")
        async def event_finish(interaction: discord.Interaction) -> None:
            await self.route_command("event.finish", interaction)

        @ban_group.command(name="add", description="Ban a user from events in this server")
        async def ban_add(interaction: discord.Interaction, user: discord.User) -> None:
            await self.route_command("eventban.add", interaction, user=user)

        @ban_group.command(name="remove", description="Lift a user's event ban in this server")
        async def ban_remove(interaction: discord.Interaction, user: discord.User) -> None:
            await self.route_command("eventban.remove", interaction, user=user)

        @ban_group.command(name="list", description="List event bans in this server")
        async def ban_list(interaction: discord.Interaction) -> None:
            await self.route_command("eventban.list", interaction)

        @ban_group.command(name="global-add", description="Ban a user from events everywhere")
        async def ban_global_add(interaction: discord.Interaction, user: discord.User) -> None:
            await self.route_command("eventban.global-add", interaction, user=user)

        @ban_group.command(name="global-remove", description="Lift a global event ban")
        async def ban_global_remove(interaction: discord.Interaction, user: discord.User) -> None:
            await self.route_command("eventban.global-remove", interaction, user=user)

        @staff_group.command(name="hire", description="Hire a user as eventsmode")
        async def staff_hire(interaction: discord.Interaction, user: discord.Member) -> None:
            await self.route_command("eventsmode.hire", interaction, user=user)

        @staff_group.command(name="fire", description="Fire an eventsmode")
        async def staff_fire(interaction: discord.Interaction, user: discord.Member) -> None:
            await self.route_command("eventsmode.fire", interaction, user=user)

        @staff_group.command(name="stats", description="Show salary and event statistics")
        async def staff_stats(
            interaction: discord.Interaction, user: discord.Member | None = None
        ) -> None:
            await self.route_command("eventsmode.stats", interaction, user=user)

        @staff_group.command(name="setup", description="Configure eventsmode for this server")
        @app_commands.describe(
            category="Category where event channels are created",
            log_channel="Channel for audit messages",
            moderator_role="Role allowed to manage events",
            announce_channel="Channel for event announcements",
            announce="Announce started events",
        )
        async def staff_setup(
            interaction: discord.Interaction,
            category: discord.CategoryChannel | None = None,
            log_channel: discord.TextChannel | None = None,
            moderator_role: discord.Role | None = None,
            announce_channel: discord.TextChannel | None = None,
            announce: bool | None = None,
        ) -> None:
            await self.route_command(
                "eventsmode.setup",
                interaction,
                category=category,
                log_channel=log_channel,
                moderator_role=moderator_role,
                announce_channel=announce_channel,
                announce=announce,
            )

        for group in (event_group, ban_group, staff_group):
            self.tree.add_command(group)

    async def setup_hook(self) -> None:
        """Restore the persistent start panel and sync slash commands."""
        self.add_view(StartEventView(self))
        if self.settings.discord_guild_id:
            guild = discord.Object(id=int(self.settings.discord_guild_id))
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info("discord_commands_synced guild_id=%s", self.settings.discord_guild_id)
        else:
            await self.tree.sync()
            logger.info("discord_commands_synced globally")

    async def on_ready(self) -> None:
        """Called on every (re)connect; the listener task is started once."""
        user = self.user
        logger.info("discord_bot_ready user=%s", user.name if user else "unknown")
        if self._event_listener_task is None or self._event_listener_task.done():
            self._event_listener_task = asyncio.create_task(
                self._listen_to_event_bus(), name="discord-audit-listener"
            )

    async def _listen_to_event_bus(self) -> None:
        """Subscribe to audit messages and forward them to log channels."""
        async with self.event_bus.subscribe(AUDIT_MESSAGE) as subscription:
            async for event in subscription:
                try:
                    await self._dispatch_event(event)
                except Exception:  # Last-resort handler: the listener must survive
                    logger.exception("discord_event_dispatch_error event=%s", event.get("type"))

    async def _dispatch_event(self, event: dict[str, Any]) -> None:
        """Post one audit message to its guild's log channel, if configured."""
        data = event.get("data", {})
        if not isinstance(data, dict):
            return
        guild_id = str(data.get("guild_id", ""))
        message = str(data.get("message", ""))
        if not guild_id or not message or self.engine is None:
            return

        try:
            async with db_session(self.engine) as repo:
                settings = await repo.get_guild_settings(guild_id)
        except SQLAlchemyError:
            logger.exception("audit_settings_lookup_failed guild_id=%s", guild_id)
            return
        if not settings.log_channel_id:
            logger.debug("audit_no_log_channel guild_id=%s", guild_id)
            return

        channel = self.get_channel(int(settings.log_channel_id))
        if not isinstance(channel, discord.abc.Messageable):
            logger.warning(
                "audit_log_channel_missing guild_id=%s channel=%s",
                guild_id,
                settings.log_channel_id,
            )
            return
        try:
            await channel.send(embed=build_audit_embed(message))
        except discord.HTTPException:
            logger.exception("audit_send_failed guild_id=%s", guild_id)

    async def close(self) -> None:
        """Clean shutdown: cancel the audit listener and close the bot."""
        if self._event_listener_task and not self._event_listener_task.done():
            self._event_listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._event_listener_task
        await super().close()


def is_discord_enabled(settings: Settings) -> bool:
    """True when the bot is enabled with a token and we are not in development."""
    if settings.eventsmode_env == "development":
        logger.info("discord_bot_skipped_in_development")
        return False
    return bool(settings.discord_enabled and settings.discord_bot_token)


async def start_discord_bot(
    settings: Settings,
    event_bus: EventBus,
    engine: AsyncEngine | None = None,
) -> EventsmodeBot:
    """Launch the bot as a background task on the running loop.

    The returned bot is closed by the app lifespan on shutdown.
    """
    bot = EventsmodeBot(settings=settings, event_bus=event_bus, engine=engine)

    async def _run_bot() -> None:
        try:
            await bot.start(settings.discord_bot_token)
        except asyncio.CancelledError:
            logger.info("discord_bot_cancelled")
        except Exception:  # Last-resort handler: bot.start raises connection and auth errors
            logger.exception("discord_bot_error")
        finally:
            if not bot.is_closed():
                await bot.close()

    asyncio.create_task(_run_bot(), name="discord-bot")
    logger.info("discord_bot_started")
    return bot
