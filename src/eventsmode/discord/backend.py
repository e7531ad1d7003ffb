"""discord.py implementation of the ChannelBackend protocol for one guild."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import discord

logger = logging.getLogger(__name__)


class DiscordChannelBackend:
    """Creates, secures and deletes channels in a single guild.

    discord.py errors (``discord.HTTPException`` and friends) propagate; the
    channel provider decides whether they abort or are swallowed.

    *client* resolves users who are not (or no longer) guild members, so a
    banned user who left still gets a member overwrite.
    """

    def __init__(self, guild: discord.Guild, client: discord.Client) -> None:
        self.guild = guild
        self.client = client

    def _category(self, category_id: str) -> discord.CategoryChannel | None:
        channel = self.guild.get_channel(int(category_id))
        return channel if isinstance(channel, discord.CategoryChannel) else None

    def _channel(self, channel_id: str) -> discord.abc.GuildChannel:
        channel = self.guild.get_channel(int(channel_id))
        if channel is None:
            msg = f"Channel {channel_id} not found in guild {self.guild.id}"
            raise LookupError(msg)
        return channel

    async def has_category(self, category_id: str) -> bool:
        return self._category(category_id) is not None

    async def create_voice_channel(self, category_id: str, name: str, user_limit: int) -> str:
        category = self._category(category_id)
        if category is None:
            msg = f"Category {category_id} not found in guild {self.guild.id}"
            raise LookupError(msg)
        channel = await category.create_voice_channel(name, user_limit=user_limit, position=0)
        return str(channel.id)

    async def create_text_channel(self, category_id: str, name: str) -> str:
        category = self._category(category_id)
        if category is None:
            msg = f"Category {category_id} not found in guild {self.guild.id}"
            raise LookupError(msg)
        channel = await category.create_text_channel(name)
        return str(channel.id)

    async def sync_permissions(self, channel_id: str) -> None:
        channel = self._channel(channel_id)
        await channel.edit(sync_permissions=True)

    async def apply_overwrite(
        self, channel_id: str, user_id: str, permissions: Mapping[str, bool]
    ) -> None:
        channel = self._channel(channel_id)
        target = await self._resolve_user(int(user_id))
        if target is None:
            # Discord has no such account: there is nobody to overwrite.
            logger.warning(
                "overwrite_skipped_unknown_user channel=%s user_id=%s", channel_id, user_id
            )
            return
        await channel.set_permissions(target, overwrite=discord.PermissionOverwrite(**permissions))

    async def _resolve_user(self, user_id: int) -> discord.abc.User | None:
        """Guild member if present, otherwise the plain Discord user."""
        member = self.guild.get_member(user_id)
        if member is not None:
            return member
        user = self.client.get_user(user_id)
        if user is not None:
            return user
        try:
            return await self.client.fetch_user(user_id)
        except discord.NotFound:
            return None

    async def delete_channel(self, channel_id: str) -> None:
        channel = self.guild.get_channel(int(channel_id))
        if channel is None:
            logger.info("channel_already_gone channel=%s", channel_id)
            return
        await channel.delete(reason="Event activity closed")
