"""Slash command and button handlers.

Every handler has the signature ``(bot, interaction, **options)`` and is
reached only through ``dispatch.COMMAND_HANDLERS``, after its guards passed.
Lifecycle errors propagate to the dispatcher, which reports them to the actor.
"""

from __future__ import annotations

import functools
import logging
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

import discord
from pydantic import ValidationError

from eventsmode.discord.backend import DiscordChannelBackend
from eventsmode.discord.embeds import (
    COLOR_DANGER,
    COLOR_SUCCESS,
    MAX_EMBEDS_PER_MESSAGE,
    build_activity_closed_embed,
    build_activity_started_embed,
    build_ban_list_embed,
    build_event_list_embeds,
    build_panel_embed,
    build_response_embed,
    build_stats_embed,
    parse_message_payload,
)
from eventsmode.discord.helpers import db_session, reply
from eventsmode.discord.views import (
    CategorySelectView,
    CreateEventModal,
    StartEventView,
    selection_prompt,
)
from eventsmode.models.event import EDITABLE_EVENT_FIELDS

if TYPE_CHECKING:
    from eventsmode.core.lifecycle import ClosedActivity
    from eventsmode.core.selection import StartedActivity
    from eventsmode.discord.bot import EventsmodeBot

logger = logging.getLogger(__name__)


async def _fail(interaction: discord.Interaction, text: str) -> None:
    await reply(interaction, embed=build_response_embed(text, COLOR_DANGER))


async def _ok(interaction: discord.Interaction, text: str) -> None:
    await reply(interaction, embed=build_response_embed(text, COLOR_SUCCESS))


# --- Start panel and selection ---


async def post_panel(bot: EventsmodeBot, interaction: discord.Interaction) -> None:
    channel = interaction.channel
    if not isinstance(channel, discord.abc.Messageable):
        await _fail(interaction, "The panel can only be posted in a text channel.")
        return
    await channel.send(embed=build_panel_embed(), view=StartEventView(bot))
    await _ok(interaction, "Start panel posted.")


async def start_selection(bot: EventsmodeBot, interaction: discord.Interaction) -> None:
    """Start button: check entry preconditions and show the category menu."""
    assert interaction.guild is not None
    assert bot.lifecycle is not None
    await interaction.response.defer(ephemeral=True, thinking=True)
    flow = await bot.lifecycle.open_selection(
        str(interaction.guild.id),
        str(interaction.user.id),
        DiscordChannelBackend(interaction.guild, interaction.client),
    )
    view = CategorySelectView(flow, on_started=functools.partial(announce_started, bot))
    await interaction.followup.send(
        selection_prompt("Choose the event category", len(flow.categories)),
        view=view,
        ephemeral=True,
    )


async def announce_started(
    bot: EventsmodeBot,
    interaction: discord.Interaction,
    started: StartedActivity,
) -> None:
    """Pin the start messages in the text channel and post the announcement.

    The activity already exists; a failed message is logged, never raised.
    """
    guild = interaction.guild
    assert guild is not None
    text_channel = guild.get_channel(int(started.channels.text_channel_id))
    if isinstance(text_channel, discord.TextChannel):
        messages = [
            {
                "embed": build_activity_started_embed(
                    started.event, started.operator.user_id, started.activity_id
                )
            }
        ]
        if started.event.start_embed.strip():
            messages.append(parse_message_payload(started.event.start_embed))
        for kwargs in messages:
            try:
                message = await text_channel.send(**kwargs)
                await message.pin()
            except discord.HTTPException:
                logger.exception(
                    "start_message_failed guild_id=%s channel=%s", guild.id, text_channel.id
                )

    assert bot.engine is not None
    async with db_session(bot.engine) as repo:
        settings = await repo.get_guild_settings(str(guild.id))
    if not settings.is_event_announce:
        return
    if not settings.announce_channel_id:
        await interaction.followup.send(
            "Please contact your moderator/administrator to set up the announce channel.",
            ephemeral=True,
        )
        return
    announce_channel = guild.get_channel(int(settings.announce_channel_id))
    if not isinstance(announce_channel, discord.TextChannel):
        logger.warning(
            "announce_channel_missing guild_id=%s channel=%s",
            guild.id,
            settings.announce_channel_id,
        )
        return

    view = discord.ui.View()
    view.add_item(
        discord.ui.Button(
            label="Join",
            style=discord.ButtonStyle.link,
            url=f"https://discord.com/channels/{guild.id}/{started.channels.voice_channel_id}",
        )
    )
    if started.event.announce_embed:
        payload = parse_message_payload(started.event.announce_embed)
    else:
        payload = {
            "embed": build_activity_started_embed(
                started.event, started.operator.user_id, started.activity_id
            )
        }
    try:
        await announce_channel.send(**payload, view=view)
    except discord.HTTPException:
        logger.exception("announce_failed guild_id=%s channel=%s", guild.id, announce_channel.id)


# --- Event catalog ---


async def open_create_modal(bot: EventsmodeBot, interaction: discord.Interaction) -> None:
    await interaction.response.send_modal(CreateEventModal(bot=bot))


async def create_event(
    bot: EventsmodeBot,
    interaction: discord.Interaction,
    *,
    category: str,
    name: str,
    multiplier: str,
    start_embed: str = "",
    announce_embed: str = "",
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    guild_id = str(interaction.guild.id)
    try:
        parsed = Decimal(multiplier.replace(",", "."))
    except InvalidOperation:
        await _fail(interaction, f"`{multiplier}` is not a number.")
        return
    async with db_session(bot.engine) as repo:
        if await repo.find_event(guild_id, category, name) is not None:
            await _fail(interaction, f"Event `{category} | {name}` already exists.")
            return
        try:
            event = await repo.create_event(
                guild_id,
                category,
                name,
                parsed,
                start_embed=start_embed,
                announce_embed=announce_embed or None,
            )
        except ValidationError as exc:
            await _fail(interaction, f"Invalid event: {exc.errors()[0]['msg']}")
            return
    logger.info("event_created guild_id=%s event=%s", guild_id, event.label)
    await _ok(interaction, f"Event `{event.label}` created with multiplier `{event.multiplier}`.")


async def list_events(bot: EventsmodeBot, interaction: discord.Interaction) -> None:
    assert interaction.guild is not None and bot.engine is not None
    async with db_session(bot.engine) as repo:
        events = await repo.list_events(str(interaction.guild.id))
    embeds = build_event_list_embeds(events)
    # One message carries at most 10 embeds; the rest follow in further messages.
    for start in range(0, len(embeds), MAX_EMBEDS_PER_MESSAGE):
        await reply(interaction, embeds=embeds[start : start + MAX_EMBEDS_PER_MESSAGE])


async def edit_event(
    bot: EventsmodeBot,
    interaction: discord.Interaction,
    *,
    category: str,
    name: str,
    field: str,
    value: str,
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    guild_id = str(interaction.guild.id)
    if field not in EDITABLE_EVENT_FIELDS:
        await _fail(interaction, f"`{field}` cannot be edited.")
        return
    async with db_session(bot.engine) as repo:
        event = await repo.find_event(guild_id, category, name)
        if event is None:
            await _fail(interaction, f"Event `{category} | {name}` does not exist.")
            return
        if field in ("category", "name"):
            new_category = value if field == "category" else category
            new_name = value if field == "name" else name
            clash = await repo.find_event(guild_id, new_category, new_name)
            if clash is not None and clash.id != event.id:
                await _fail(interaction, f"Event `{new_category} | {new_name}` already exists.")
                return
        try:
            updated = await repo.update_event_field(event.id, field, value)
        except ValidationError as exc:
            await _fail(interaction, f"Invalid {field}: {exc.errors()[0]['msg']}")
            return
    assert updated is not None
    logger.info("event_edited guild_id=%s event=%s field=%s", guild_id, updated.label, field)
    await _ok(interaction, f"Event `{updated.label}` updated.")


async def remove_event(
    bot: EventsmodeBot,
    interaction: discord.Interaction,
    *,
    category: str,
    name: str,
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    guild_id = str(interaction.guild.id)
    async with db_session(bot.engine) as repo:
        event = await repo.find_event(guild_id, category, name)
        if event is None:
            await _fail(interaction, f"Event `{category} | {name}` does not exist.")
            return
        running = [a for a in await repo.list_activities(guild_id) if a.event.id == event.id]
        if running:
            await _fail(interaction, f"Event `{event.label}` is running and cannot be removed.")
            return
        await repo.remove_event(guild_id, category, name)
    logger.info("event_removed guild_id=%s event=%s", guild_id, event.label)
    await _ok(interaction, f"Event `{event.label}` removed.")


# --- Closing ---


async def _report_closed(interaction: discord.Interaction, closed: ClosedActivity) -> None:
    # The command may have been run inside the text channel that was just deleted.
    try:
        await reply(interaction, embed=build_activity_closed_embed(closed.history))
    except discord.HTTPException:
        logger.debug("close_reply_failed activity_id=%s", closed.record.id, exc_info=True)


async def close_event(
    bot: EventsmodeBot,
    interaction: discord.Interaction,
    *,
    user: discord.abc.User,
) -> None:
    """Forced close of *user*'s running activity by a moderator."""
    assert interaction.guild is not None and bot.lifecycle is not None
    await interaction.response.defer(ephemeral=True, thinking=True)
    closed = await bot.lifecycle.close_for_operator(
        str(interaction.guild.id),
        str(user.id),
        DiscordChannelBackend(interaction.guild, interaction.client),
        closed_by=str(interaction.user.id),
    )
    await _report_closed(interaction, closed)


async def finish_event(bot: EventsmodeBot, interaction: discord.Interaction) -> None:
    """Voluntary close by the operator of their own activity."""
    assert interaction.guild is not None and bot.lifecycle is not None
    await interaction.response.defer(ephemeral=True, thinking=True)
    closed = await bot.lifecycle.close_for_operator(
        str(interaction.guild.id),
        str(interaction.user.id),
        DiscordChannelBackend(interaction.guild, interaction.client),
        closed_by=str(interaction.user.id),
    )
    await _report_closed(interaction, closed)


# --- Ban registry ---


async def ban_add(
    bot: EventsmodeBot, interaction: discord.Interaction, *, user: discord.abc.User
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    async with db_session(bot.engine) as repo:
        added = await repo.add_guild_ban(
            str(interaction.guild.id), str(interaction.user.id), str(user.id)
        )
    if not added:
        await _fail(interaction, f"{user.mention} is already banned from events here.")
        return
    logger.info("event_ban_added guild_id=%s target=%s", interaction.guild.id, user.id)
    await _ok(interaction, f"{user.mention} is banned from events in this server.")


async def ban_remove(
    bot: EventsmodeBot, interaction: discord.Interaction, *, user: discord.abc.User
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    async with db_session(bot.engine) as repo:
        removed = await repo.remove_guild_ban(str(interaction.guild.id), str(user.id))
    if not removed:
        await _fail(interaction, f"{user.mention} is not banned from events here.")
        return
    logger.info("event_ban_removed guild_id=%s target=%s", interaction.guild.id, user.id)
    await _ok(interaction, f"{user.mention} may join events in this server again.")


async def ban_list(bot: EventsmodeBot, interaction: discord.Interaction) -> None:
    assert interaction.guild is not None and bot.engine is not None
    async with db_session(bot.engine) as repo:
        bans = await repo.list_guild_bans(str(interaction.guild.id))
    await reply(interaction, embed=build_ban_list_embed(bans, "Event bans"))


async def global_ban_add(
    bot: EventsmodeBot, interaction: discord.Interaction, *, user: discord.abc.User
) -> None:
    assert bot.engine is not None
    async with db_session(bot.engine) as repo:
        added = await repo.add_global_ban(str(interaction.user.id), str(user.id))
    if not added:
        await _fail(interaction, f"{user.mention} is already globally banned.")
        return
    logger.info("global_event_ban_added target=%s", user.id)
    await _ok(interaction, f"{user.mention} is banned from events in every server.")


async def global_ban_remove(
    bot: EventsmodeBot, interaction: discord.Interaction, *, user: discord.abc.User
) -> None:
    assert bot.engine is not None
    async with db_session(bot.engine) as repo:
        removed = await repo.remove_global_ban(str(user.id))
    if not removed:
        await _fail(interaction, f"{user.mention} is not globally banned.")
        return
    logger.info("global_event_ban_removed target=%s", user.id)
    await _ok(interaction, f"{user.mention} is no longer globally banned.")


# --- Operators ---


async def hire(
    bot: EventsmodeBot, interaction: discord.Interaction, *, user: discord.abc.User
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    async with db_session(bot.engine) as repo:
        await repo.hire_operator(str(interaction.guild.id), str(user.id))
    logger.info("operator_hired guild_id=%s user_id=%s", interaction.guild.id, user.id)
    await _ok(interaction, f"{user.mention} is now an eventsmode.")


async def fire(
    bot: EventsmodeBot, interaction: discord.Interaction, *, user: discord.abc.User
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    async with db_session(bot.engine) as repo:
        fired = await repo.fire_operator(str(interaction.guild.id), str(user.id))
    if not fired:
        await _fail(interaction, f"{user.mention} is not a hired eventsmode.")
        return
    logger.info("operator_fired guild_id=%s user_id=%s", interaction.guild.id, user.id)
    await _ok(interaction, f"{user.mention} is no longer an eventsmode.")


async def stats(
    bot: EventsmodeBot,
    interaction: discord.Interaction,
    *,
    user: discord.abc.User | None = None,
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    target = user or interaction.user
    async with db_session(bot.engine) as repo:
        profile = await repo.find_operator(str(interaction.guild.id), str(target.id))
    if profile is None:
        await _fail(interaction, f"{target.mention} has never been an eventsmode here.")
        return
    await reply(interaction, embed=build_stats_embed(profile, target.display_name))


# --- Guild setup ---


async def configure(
    bot: EventsmodeBot,
    interaction: discord.Interaction,
    *,
    category: discord.CategoryChannel | None = None,
    log_channel: discord.TextChannel | None = None,
    moderator_role: discord.Role | None = None,
    announce_channel: discord.TextChannel | None = None,
    announce: bool | None = None,
) -> None:
    assert interaction.guild is not None and bot.engine is not None
    fields: dict[str, object] = {}
    if category is not None:
        fields["eventsmode_category_id"] = str(category.id)
        fields["is_channel_configured"] = True
    if log_channel is not None:
        fields["log_channel_id"] = str(log_channel.id)
    if moderator_role is not None:
        fields["moderator_role_id"] = str(moderator_role.id)
    if announce_channel is not None:
        fields["announce_channel_id"] = str(announce_channel.id)
    if announce is not None:
        fields["is_event_announce"] = announce
    if not fields:
        await _fail(interaction, "Nothing to change.")
        return
    async with db_session(bot.engine) as repo:
        settings = await repo.upsert_guild_settings(str(interaction.guild.id), **fields)
    logger.info(
        "guild_configured guild_id=%s fields=%s", interaction.guild.id, ",".join(sorted(fields))
    )
    lines = [
        f"Category: {_mention_channel(settings.eventsmode_category_id)}",
        f"Log channel: {_mention_channel(settings.log_channel_id)}",
        f"Moderator role: {_mention_role(settings.moderator_role_id)}",
        f"Announcements: {'on' if settings.is_event_announce else 'off'} "
        f"({_mention_channel(settings.announce_channel_id)})",
    ]
    await _ok(interaction, "\n".join(lines))


def _mention_channel(channel_id: str | None) -> str:
    return f"<#{channel_id}>" if channel_id else "not set"


def _mention_role(role_id: str | None) -> str:
    return f"<@&{role_id}>" if role_id else "not set"
