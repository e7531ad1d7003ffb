"""History recorder: weekly and global snapshots of closed activities.

The two stores are independent: each append runs in its own unit of work, so
a failed weekly append never undoes the global one (or the reverse).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from eventsmode.core.errors import HistoryRecordError
from eventsmode.models.activity import HistoryEntry

if TYPE_CHECKING:
    from eventsmode.core.ports import StoreScope
    from eventsmode.models.activity import ActivityRecord

logger = logging.getLogger(__name__)


def build_history_entry(record: ActivityRecord, salary: int) -> HistoryEntry:
    return HistoryEntry(
        guild_id=record.guild_id,
        event=record.event,
        operator=record.operator,
        started_at=record.started_at,
        total_time=record.event_time,
        total_salary=salary,
    )


class HistoryRecorder:
    def __init__(self, stores: StoreScope) -> None:
        self.stores = stores

    async def record(self, record: ActivityRecord, salary: int) -> HistoryEntry:
        """Append to the weekly store, then the global store.

        Both appends are attempted. Raises HistoryRecordError naming the
        stores that failed.
        """
        entry = build_history_entry(record, salary)
        failed: list[str] = []

        try:
            async with self.stores() as repo:
                await repo.append_weekly_history(entry)
        except Exception:  # Attempt the global append regardless; surfaced below
            logger.exception("history_append_failed store=weekly activity=%s", record.id)
            failed.append("weekly")

        try:
            async with self.stores() as repo:
                await repo.append_global_history(entry)
        except Exception:  # Surfaced below with the weekly outcome
            logger.exception("history_append_failed store=global activity=%s", record.id)
            failed.append("global")

        if failed:
            raise HistoryRecordError(failed)
        logger.info(
            "history_recorded activity=%s total_time=%d total_salary=%d",
            record.id,
            entry.total_time,
            entry.total_salary,
        )
        return entry
