"""Discord embed builders for eventsmode.

Each builder takes domain data and returns a styled embed ready to send.
Start and announcement messages are stored per event as JSON message
payloads; ``parse_message_payload`` turns them into ``send`` kwargs.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import discord

if TYPE_CHECKING:
    from eventsmode.models.activity import HistoryEntry, OperatorProfile
    from eventsmode.models.event import BanEntry, Event

logger = logging.getLogger(__name__)

COLOR_INFO = 0x3498DB
COLOR_SUCCESS = 0x2ECC71
COLOR_DANGER = 0xE74C3C
COLOR_AUDIT = 0x9B59B6
COLOR_EVENT = 0xE3B1FF

# Discord caps embeds at 25 fields.
MAX_EMBED_FIELDS = 25
MAX_EMBEDS_PER_MESSAGE = 10

FALLBACK_CONTENT = "Something went wrong while rendering this event message."


def build_response_embed(text: str, color: int = COLOR_INFO) -> discord.Embed:
    """One-line status embed used for command replies."""
    return discord.Embed(description=text, color=color)


def build_audit_embed(message: str) -> discord.Embed:
    embed = discord.Embed(description=message, color=COLOR_AUDIT)
    embed.set_footer(text="Eventsmode audit")
    return embed


def build_panel_embed() -> discord.Embed:
    return discord.Embed(
        title="Events",
        description="Hired eventsmodes can start an event with the button below.",
        color=COLOR_EVENT,
    )


def build_event_list_embeds(events: list[Event]) -> list[discord.Embed]:
    """Catalog listing, split across embeds of at most 25 fields."""
    if not events:
        return [build_response_embed("No events are configured for this server yet.")]
    embeds: list[discord.Embed] = []
    for start in range(0, len(events), MAX_EMBED_FIELDS):
        embed = discord.Embed(title="Events", color=COLOR_EVENT)
        for event in events[start : start + MAX_EMBED_FIELDS]:
            embed.add_field(
                name=event.label,
                value=f"Multiplier: `{event.multiplier}`",
                inline=True,
            )
        embeds.append(embed)
    return embeds


def build_stats_embed(profile: OperatorProfile, display_name: str) -> discord.Embed:
    status = "hired" if profile.is_hired else "not hired"
    embed = discord.Embed(
        title=f"Eventsmode stats: {display_name}",
        color=COLOR_INFO if profile.is_hired else COLOR_DANGER,
    )
    embed.add_field(name="Status", value=status, inline=True)
    embed.add_field(name="Weekly salary", value=str(profile.weekly_salary), inline=True)
    embed.add_field(name="Total salary", value=str(profile.total_salary), inline=True)
    embed.add_field(
        name="Longest event", value=f"{profile.longest_event} min", inline=True
    )
    return embed


def build_ban_list_embed(bans: list[BanEntry], title: str) -> discord.Embed:
    if not bans:
        return build_response_embed(f"{title}: nobody is banned.")
    lines = [f"<@{ban.target_id}> (by <@{ban.executor_id}>)" for ban in bans]
    return discord.Embed(title=title, description="\n".join(lines), color=COLOR_DANGER)


def build_activity_started_embed(event: Event, user_id: str, activity_id: str) -> discord.Embed:
    embed = discord.Embed(
        description=f"<@{user_id}> started event `{event.name}`",
        color=COLOR_SUCCESS,
    )
    embed.set_footer(text=f"Activity {activity_id}")
    return embed


def build_activity_closed_embed(history: HistoryEntry) -> discord.Embed:
    embed = discord.Embed(
        title="Event closed",
        description=f"**{history.event.label}** hosted by <@{history.operator.user_id}>",
        color=COLOR_INFO,
    )
    embed.add_field(name="Event time", value=f"{history.total_time} min", inline=True)
    embed.add_field(name="Salary", value=str(history.total_salary), inline=True)
    return embed


def parse_message_payload(raw: str | None) -> dict[str, Any]:
    """Turn a stored JSON message payload into ``Messageable.send`` kwargs.

    Accepts ``{"content": ..., "embeds": [...]}``, a bare embed dict, or a
    plain string. Anything unparsable falls back to a generic notice.
    """
    if not raw or not raw.strip():
        return {"content": FALLBACK_CONTENT}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("message_payload_invalid_json payload=%s", raw[:200])
        return {"content": FALLBACK_CONTENT}

    if isinstance(data, str):
        return {"content": data}
    if not isinstance(data, dict):
        return {"content": FALLBACK_CONTENT}

    kwargs: dict[str, Any] = {}
    content = data.get("content")
    if isinstance(content, str) and content:
        kwargs["content"] = content
    raw_embeds = data.get("embeds")
    if isinstance(raw_embeds, list):
        embeds = [discord.Embed.from_dict(item) for item in raw_embeds if isinstance(item, dict)]
        if embeds:
            kwargs["embeds"] = embeds[:MAX_EMBEDS_PER_MESSAGE]
    elif "content" not in data and ({"title", "description", "fields"} & data.keys()):
        kwargs["embeds"] = [discord.Embed.from_dict(data)]
    return kwargs or {"content": FALLBACK_CONTENT}
