"""Channel provisioning and the ban-aware permission policy.

Every activity gets a voice + text channel pair under the guild's eventsmode
category. Banned users (guild or global list) are denied speak, connect and
send on both channels; the operator gets moderation rights on both.

Provisioning is all-or-nothing from the caller's point of view: on any
failure the channels created so far are deleted before ``ProvisioningError``
is raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from eventsmode.core.errors import ProvisioningError

if TYPE_CHECKING:
    from eventsmode.core.ports import ChannelBackend
    from eventsmode.models.event import BanEntry, Event

logger = logging.getLogger(__name__)

DEFAULT_VOICE_USER_LIMIT = 10

# discord.PermissionOverwrite attribute names
BANNED_USER_PERMISSIONS: dict[str, bool] = {
    "speak": False,
    "connect": False,
    "send_messages": False,
}

OPERATOR_PERMISSIONS: dict[str, bool] = {
    "manage_roles": True,
    "manage_channels": True,
    "send_messages": True,
    "view_channel": True,
}


@dataclass(frozen=True)
class ProvisionedChannels:
    voice_channel_id: str
    text_channel_id: str

    @property
    def ids(self) -> tuple[str, str]:
        return (self.voice_channel_id, self.text_channel_id)


def compute_deny_set(guild_bans: Iterable[BanEntry], global_bans: Iterable[BanEntry]) -> set[str]:
    """Union of guild-scoped and global ban targets, deduplicated by user id."""
    return {ban.target_id for ban in guild_bans} | {ban.target_id for ban in global_bans}


class ChannelProvider:
    """Creates, secures and tears down an activity's channel pair."""

    def __init__(
        self,
        backend: ChannelBackend,
        voice_user_limit: int = DEFAULT_VOICE_USER_LIMIT,
    ) -> None:
        self.backend = backend
        self.voice_user_limit = voice_user_limit

    async def provision(
        self,
        category_id: str,
        event: Event,
        operator_user_id: str,
        deny_set: set[str],
    ) -> ProvisionedChannels:
        """Create both channels and apply the permission policy.

        Raises ProvisioningError after rolling back whatever was created.
        """
        created: list[str] = []
        try:
            voice_id = await self.backend.create_voice_channel(
                category_id, event.name, self.voice_user_limit
            )
            created.append(voice_id)
            text_id = await self.backend.create_text_channel(category_id, event.name)
            created.append(text_id)

            for channel_id in created:
                await self.backend.sync_permissions(channel_id)

            # Overwrites are per user and independent, so order is irrelevant.
            for user_id in sorted(deny_set):
                for channel_id in created:
                    await self.backend.apply_overwrite(
                        channel_id, user_id, BANNED_USER_PERMISSIONS
                    )

            for channel_id in created:
                await self.backend.apply_overwrite(
                    channel_id, operator_user_id, OPERATOR_PERMISSIONS
                )
        except Exception as exc:  # Any backend failure aborts; roll back before re-raising
            logger.exception(
                "provision_failed guild_event=%s operator=%s created=%s",
                event.label,
                operator_user_id,
                created,
            )
            await self.rollback(created)
            raise ProvisioningError("Could not create the event channels.") from exc

        logger.info(
            "provisioned voice=%s text=%s event=%s operator=%s denied=%d",
            voice_id,
            text_id,
            event.label,
            operator_user_id,
            len(deny_set),
        )
        return ProvisionedChannels(voice_channel_id=voice_id, text_channel_id=text_id)

    async def rollback(self, channel_ids: Iterable[str]) -> None:
        """Delete channels created by a failed provisioning attempt."""
        for channel_id in channel_ids:
            await self._delete_quietly(channel_id, reason="rollback")

    async def teardown(self, voice_channel_id: str, text_channel_id: str) -> None:
        """Delete voice then text channel. Failures are logged, never raised."""
        await self._delete_quietly(voice_channel_id, reason="teardown")
        await self._delete_quietly(text_channel_id, reason="teardown")

    async def _delete_quietly(self, channel_id: str, reason: str) -> None:
        try:
            await self.backend.delete_channel(channel_id)
        except Exception:  # Deletion is best-effort; the caller has already committed
            logger.exception("channel_delete_failed channel=%s reason=%s", channel_id, reason)
        else:
            logger.info("channel_deleted channel=%s reason=%s", channel_id, reason)
