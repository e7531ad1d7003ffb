"""Per-guild settings read by the activity lifecycle."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class GuildSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    guild_id: str
    is_channel_configured: bool = False
    eventsmode_category_id: str | None = None
    log_channel_id: str | None = None
    moderator_role_id: str | None = None
    is_event_announce: bool = False
    announce_channel_id: str | None = None
