"""Collaborator interfaces the lifecycle core depends on.

``eventsmode.db.repository.Repository`` satisfies every storage protocol;
``eventsmode.discord.backend.DiscordChannelBackend`` satisfies ChannelBackend.
Tests substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from eventsmode.models.activity import (
    ActivityRecord,
    HistoryEntry,
    OperatorProfile,
    StatisticsDelta,
)
from eventsmode.models.event import BanEntry, Event
from eventsmode.models.guild import GuildSettings


class EventCatalog(Protocol):
    async def find_event(self, guild_id: str, category: str, name: str) -> Event | None: ...

    async def list_events(self, guild_id: str) -> list[Event]: ...


class BanRegistry(Protocol):
    async def list_guild_bans(self, guild_id: str) -> list[BanEntry]: ...

    async def list_global_bans(self) -> list[BanEntry]: ...


class OperatorStore(Protocol):
    async def find_operator(self, guild_id: str, user_id: str) -> OperatorProfile | None: ...

    async def update_statistics(
        self, guild_id: str, user_id: str, delta: StatisticsDelta
    ) -> OperatorProfile | None: ...


class ActivityStore(Protocol):
    async def insert_activity_if_absent(
        self,
        event: Event,
        operator: OperatorProfile,
        voice_channel_id: str,
        text_channel_id: str,
    ) -> ActivityRecord | None: ...

    async def find_activity_by_operator(
        self, guild_id: str, user_id: str
    ) -> ActivityRecord | None: ...

    async def get_activity(self, activity_id: str) -> ActivityRecord | None: ...

    async def delete_activity(self, activity_id: str) -> ActivityRecord | None: ...


class HistoryStore(Protocol):
    async def append_weekly_history(self, entry: HistoryEntry) -> str: ...

    async def append_global_history(self, entry: HistoryEntry) -> str: ...


class GuildSettingsStore(Protocol):
    async def get_guild_settings(self, guild_id: str) -> GuildSettings: ...


class Stores(
    EventCatalog,
    BanRegistry,
    OperatorStore,
    ActivityStore,
    HistoryStore,
    GuildSettingsStore,
    Protocol,
):
    """Everything the lifecycle reads or writes, as one repository."""


class StoreScope(Protocol):
    """Opens one unit of work. Each call commits independently."""

    def __call__(self) -> AbstractAsyncContextManager[Stores]: ...


class ChannelBackend(Protocol):
    """Guild channel operations. Channel and user ids are Discord snowflakes as str."""

    async def has_category(self, category_id: str) -> bool: ...

    async def create_voice_channel(self, category_id: str, name: str, user_limit: int) -> str: ...

    async def create_text_channel(self, category_id: str, name: str) -> str: ...

    async def sync_permissions(self, channel_id: str) -> None: ...

    async def apply_overwrite(
        self, channel_id: str, user_id: str, permissions: Mapping[str, bool]
    ) -> None: ...

    async def delete_channel(self, channel_id: str) -> None: ...


class AuditSink(Protocol):
    async def emit(self, guild_id: str, message: str) -> None: ...
