"""Discord bot helpers: DB session context, replies, and permission checks."""

from __future__ import annotations

import functools
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import discord
from sqlalchemy.ext.asyncio import AsyncEngine

from eventsmode.core.ports import StoreScope
from eventsmode.db.engine import get_session
from eventsmode.db.repository import Repository
from eventsmode.models.guild import GuildSettings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def db_session(
    engine: AsyncEngine,
) -> AsyncGenerator[Repository, None]:
    """Yield a Repository bound to a fresh async session."""
    async with get_session(engine) as session:
        yield Repository(session)


def store_scope(engine: AsyncEngine) -> StoreScope:
    """A zero-argument unit-of-work factory over *engine*."""
    return functools.partial(db_session, engine)


async def reply(
    interaction: discord.Interaction,
    content: str | None = None,
    *,
    ephemeral: bool = True,
    **kwargs: Any,
) -> None:
    """Respond to an interaction whether or not it was already answered or deferred."""
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=ephemeral, **kwargs)
    else:
        await interaction.response.send_message(content, ephemeral=ephemeral, **kwargs)


def is_moderator(member: discord.abc.User, settings: GuildSettings) -> bool:
    """Manage-server permission, or the guild's configured moderator role."""
    if not isinstance(member, discord.Member):
        return False
    if member.guild_permissions.manage_guild:
        return True
    role_id = settings.moderator_role_id
    return bool(role_id) and any(str(role.id) == role_id for role in member.roles)
