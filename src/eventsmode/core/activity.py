"""Activity tracker: owns the in-flight Event Activity record.

At most one activity exists per (guild, operator). Two guards enforce it:
an in-process ``asyncio.Lock`` per key serialises concurrent flows on this
bot instance, and the store's insert-if-absent (unique constraint +
ON CONFLICT DO NOTHING) holds across processes.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import TYPE_CHECKING

from eventsmode.core.errors import ActivityNotFound, AlreadyActive, OperatorNotFound

if TYPE_CHECKING:
    from eventsmode.core.ports import ActivityStore, StoreScope
    from eventsmode.models.activity import ActivityRecord, OperatorProfile
    from eventsmode.models.event import Event

logger = logging.getLogger(__name__)


class ActivityTracker:
    def __init__(self, stores: StoreScope) -> None:
        self.stores = stores
        # Entries live only while a begin holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, guild_id: str, user_id: str) -> asyncio.Lock:
        """The per-operator lock, shared with anything that must not interleave a begin."""
        key = (guild_id, user_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def begin_activity(
        self,
        event: Event,
        operator: OperatorProfile,
        voice_channel_id: str,
        text_channel_id: str,
    ) -> str:
        """Register a running activity and return its id.

        Raises AlreadyActive if the operator already runs one in this guild,
        OperatorNotFound if the operator has no profile.
        """
        async with self.lock_for(operator.guild_id, operator.user_id):
            async with self.stores() as repo:
                if await repo.find_operator(operator.guild_id, operator.user_id) is None:
                    raise OperatorNotFound
                record = await repo.insert_activity_if_absent(
                    event, operator, voice_channel_id, text_channel_id
                )
        if record is None:
            logger.info(
                "activity_already_active guild_id=%s user_id=%s",
                operator.guild_id,
                operator.user_id,
            )
            raise AlreadyActive
        logger.info(
            "activity_begun id=%s guild_id=%s user_id=%s event=%s",
            record.id,
            record.guild_id,
            operator.user_id,
            event.label,
        )
        return record.id

    async def end_activity(
        self, activity_id: str, store: ActivityStore | None = None
    ) -> ActivityRecord:
        """Delete the activity and return its final snapshot.

        With *store*, the delete joins that open unit of work so the caller
        can commit it together with settlement. Raises ActivityNotFound if
        it was already ended.
        """
        if store is None:
            async with self.stores() as repo:
                record = await repo.delete_activity(activity_id)
        else:
            record = await store.delete_activity(activity_id)
        if record is None:
            raise ActivityNotFound
        logger.info(
            "activity_ended id=%s guild_id=%s user_id=%s event_time=%d",
            record.id,
            record.guild_id,
            record.operator.user_id,
            record.event_time,
        )
        return record

    async def find_active(self, guild_id: str, user_id: str) -> ActivityRecord | None:
        async with self.stores() as repo:
            return await repo.find_activity_by_operator(guild_id, user_id)
