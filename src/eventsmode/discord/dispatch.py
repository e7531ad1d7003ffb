"""Command routing: command id → guards → handler.

Guards are coroutines ``(bot, interaction) -> str | None`` returning a
rejection message, or None to let the command through. They run in order and
the first rejection wins. Every route gets ``require_database`` and
``require_guild`` in front of its own guards.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import discord
from sqlalchemy.exc import SQLAlchemyError

from eventsmode.core.errors import EventsmodeError
from eventsmode.discord import commands
from eventsmode.discord.embeds import COLOR_DANGER, build_response_embed
from eventsmode.discord.helpers import db_session, is_moderator, reply

if TYPE_CHECKING:
    from eventsmode.discord.bot import EventsmodeBot

logger = logging.getLogger(__name__)

Guard = Callable[["EventsmodeBot", discord.Interaction], Awaitable[str | None]]
Handler = Callable[..., Awaitable[None]]

GENERIC_FAILURE = "Something went wrong. Please try again later."


# --- Guards ---


async def require_database(
    bot: EventsmodeBot,
    interaction: discord.Interaction,  # noqa: ARG001
) -> str | None:
    if bot.engine is None or bot.lifecycle is None:
        return "Database not available."
    return None


async def require_guild(
    bot: EventsmodeBot,
    interaction: discord.Interaction,  # noqa: ARG001
) -> str | None:
    if interaction.guild is None:
        return "This command can only be used in a server."
    return None


async def require_moderator(bot: EventsmodeBot, interaction: discord.Interaction) -> str | None:
    assert interaction.guild is not None and bot.engine is not None
    async with db_session(bot.engine) as repo:
        settings = await repo.get_guild_settings(str(interaction.guild.id))
    if not is_moderator(interaction.user, settings):
        return "You need the moderator role to use this command."
    return None


async def require_admin(
    bot: EventsmodeBot,
    interaction: discord.Interaction,  # noqa: ARG001
) -> str | None:
    user = interaction.user
    if not isinstance(user, discord.Member) or not user.guild_permissions.manage_guild:
        return "You need the Manage Server permission to use this command."
    return None


async def require_owner(bot: EventsmodeBot, interaction: discord.Interaction) -> str | None:
    if not await bot.is_owner(interaction.user):
        return "Only the bot owner can manage global event bans."
    return None


# --- Routing table ---


@dataclass(frozen=True)
class Route:
    handler: Handler
    guards: tuple[Guard, ...]


def route(handler: Handler, *guards: Guard) -> Route:
    return Route(handler=handler, guards=(require_database, require_guild, *guards))


COMMAND_HANDLERS: dict[str, Route] = {
    "panel.start": route(commands.start_selection),
    "event.start": route(commands.post_panel, require_moderator),
    "event.add": route(commands.open_create_modal, require_moderator),
    "event.create": route(commands.create_event, require_moderator),
    "event.list": route(commands.list_events, require_moderator),
    "event.edit": route(commands.edit_event, require_moderator),
    "event.remove": route(commands.remove_event, require_moderator),
    "event.close": route(commands.close_event, require_moderator),
    "event.finish": route(commands.finish_event),
    "eventban.add": route(commands.ban_add, require_moderator),
    "eventban.remove": route(commands.ban_remove, require_moderator),
    "eventban.list": route(commands.ban_list, require_moderator),
    "eventban.global-add": route(commands.global_ban_add, require_owner),
    "eventban.global-remove": route(commands.global_ban_remove, require_owner),
    "eventsmode.hire": route(commands.hire, require_moderator),
    "eventsmode.fire": route(commands.fire, require_moderator),
    "eventsmode.stats": route(commands.stats),
    "eventsmode.setup": route(commands.configure, require_admin),
}


async def _reject(interaction: discord.Interaction, text: str) -> None:
    await reply(interaction, embed=build_response_embed(text, COLOR_DANGER))


async def dispatch_command(
    bot: EventsmodeBot,
    command_id: str,
    interaction: discord.Interaction,
    **options: Any,
) -> None:
    """Run *command_id*'s guards, then its handler, reporting errors to the actor."""
    target = COMMAND_HANDLERS.get(command_id)
    if target is None:
        logger.error("command_unknown command=%s", command_id)
        await _reject(interaction, GENERIC_FAILURE)
        return

    for guard in target.guards:
        rejection = await guard(bot, interaction)
        if rejection is not None:
            logger.info(
                "command_rejected command=%s user_id=%s guard=%s",
                command_id,
                interaction.user.id,
                guard.__name__,
            )
            await _reject(interaction, rejection)
            return

    try:
        await target.handler(bot, interaction, **options)
    except EventsmodeError as exc:
        logger.info(
            "command_refused command=%s user_id=%s reason=%s",
            command_id,
            interaction.user.id,
            type(exc).__name__,
        )
        await _reject(interaction, str(exc))
    except SQLAlchemyError:
        logger.exception("command_db_error command=%s", command_id)
        await _reject(interaction, GENERIC_FAILURE)
    except discord.HTTPException:
        logger.exception("command_discord_error command=%s", command_id)
        try:
            await _reject(interaction, GENERIC_FAILURE)
        except discord.HTTPException:
            logger.debug("command_error_reply_failed command=%s", command_id, exc_info=True)
