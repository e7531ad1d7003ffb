"""Event activity lifecycle: wires the components together.

Start: ``open_selection`` checks entry preconditions and returns a
``SelectionFlow`` for the UI to drive.

Close: ``close_activity`` runs end → settle → record (weekly, then global) →
channel teardown → audit. The activity delete and settlement share one unit of
work, so a failed settlement leaves the activity in place for a retry.
History uses the snapshot captured by ``end_activity``. Channels are deleted
once settlement is committed and both history appends were attempted; their
ids survive only in the audit line. A history failure is raised after
teardown and audit.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from eventsmode.core.activity import ActivityTracker
from eventsmode.core.audit import emit_quietly
from eventsmode.core.channels import DEFAULT_VOICE_USER_LIMIT, ChannelProvider
from eventsmode.core.errors import ActivityNotFound, HistoryRecordError
from eventsmode.core.history import HistoryRecorder
from eventsmode.core.selection import SELECTION_TIMEOUT_SECONDS, SelectionFlow, check_entry
from eventsmode.core.settlement import settle

if TYPE_CHECKING:
    from eventsmode.core.ports import AuditSink, ChannelBackend, StoreScope
    from eventsmode.models.activity import ActivityRecord, HistoryEntry, SettlementResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClosedActivity:
    record: ActivityRecord
    settlement: SettlementResult
    history: HistoryEntry

    @property
    def salary(self) -> int:
        return self.settlement.salary


class EventLifecycle:
    """Entry point for starting and closing event activities."""

    def __init__(
        self,
        stores: StoreScope,
        audit: AuditSink,
        *,
        selection_timeout_seconds: float = SELECTION_TIMEOUT_SECONDS,
        voice_user_limit: int = DEFAULT_VOICE_USER_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stores = stores
        self.audit = audit
        self.selection_timeout_seconds = selection_timeout_seconds
        self.voice_user_limit = voice_user_limit
        self.clock = clock
        self.tracker = ActivityTracker(stores)
        self.recorder = HistoryRecorder(stores)

    def channel_provider(self, backend: ChannelBackend) -> ChannelProvider:
        return ChannelProvider(backend, voice_user_limit=self.voice_user_limit)

    async def open_selection(
        self, guild_id: str, user_id: str, backend: ChannelBackend
    ) -> SelectionFlow:
        """Check preconditions and start a flow in AWAITING_CATEGORY.

        Raises a PreconditionError before any UI is shown.
        """
        operator, events = await check_entry(self.stores, guild_id, user_id)
        logger.info(
            "selection_opened guild_id=%s user_id=%s events=%d",
            guild_id,
            user_id,
            len(events),
        )
        return SelectionFlow(
            operator=operator,
            events=events,
            stores=self.stores,
            tracker=self.tracker,
            channels=self.channel_provider(backend),
            audit=self.audit,
            timeout_seconds=self.selection_timeout_seconds,
            clock=self.clock,
        )

    async def close_activity(
        self,
        activity_id: str,
        backend: ChannelBackend,
        closed_by: str,
    ) -> ClosedActivity:
        """Close one activity. Raises ActivityNotFound if it is already closed."""
        # Delete and settle commit together: a failed settlement keeps the
        # activity, so the close can be retried.
        async with self.stores() as repo:
            record = await self.tracker.end_activity(activity_id, store=repo)
            try:
                settlement = await settle(repo, record)
            except Exception:
                logger.exception("settlement_failed activity_id=%s kept_for_retry", activity_id)
                raise
        history_error: HistoryRecordError | None = None
        try:
            history = await self.recorder.record(record, settlement.salary)
        except HistoryRecordError as exc:
            # Settlement is committed; the channels still have to go.
            history_error = exc

        await self.channel_provider(backend).teardown(
            record.voice_channel_id, record.text_channel_id
        )

        closed_at = int(datetime.now(UTC).timestamp())
        await emit_quietly(
            self.audit,
            record.guild_id,
            f"<@{closed_by}> closed event **{record.event.label}** at <t:{closed_at}>\n"
            f"Operator: <@{record.operator.user_id}>\n"
            f"Channels: voice {record.voice_channel_id}, text {record.text_channel_id}\n"
            f"```Event time: {record.event_time}\nSalary: {settlement.salary}```",
        )
        if history_error is not None:
            raise history_error
        return ClosedActivity(record=record, settlement=settlement, history=history)

    async def close_for_operator(
        self,
        guild_id: str,
        user_id: str,
        backend: ChannelBackend,
        closed_by: str,
    ) -> ClosedActivity:
        """Close whatever activity *user_id* is running in *guild_id*."""
        record = await self.tracker.find_active(guild_id, user_id)
        if record is None:
            raise ActivityNotFound
        return await self.close_activity(record.id, backend, closed_by)
