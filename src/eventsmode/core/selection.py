"""Selection flow: the category → event state machine that starts an activity.

    AWAITING_CATEGORY ──choose_category──▶ AWAITING_EVENT ──choose_event──▶ PROVISIONING
            │                                   │                              │
         timeout                             timeout                    ok │   │ failure
            ▼                                   ▼                          ▼   ▼
         EXPIRED                             EXPIRED                    ACTIVE ABORTED

Each awaiting state accepts exactly one selection before its deadline; any
later, duplicate or late selection is ignored. The state changes before the
first ``await`` of a transition, so a selection arriving while provisioning
is in progress is ignored too. Nothing is acquired until PROVISIONING, so
expiry needs no cleanup.

The flow object is UI-agnostic: discord.py views forward select callbacks
and their own timeouts to it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from eventsmode.core.audit import emit_quietly
from eventsmode.core.channels import compute_deny_set
from eventsmode.core.errors import (
    AlreadyActive,
    ChannelNotConfigured,
    EmptyCatalog,
    EventNotFound,
    EventsmodeError,
    OperatorBanned,
    OperatorNotHired,
)

if TYPE_CHECKING:
    from eventsmode.core.activity import ActivityTracker
    from eventsmode.core.channels import ChannelProvider, ProvisionedChannels
    from eventsmode.core.ports import AuditSink, StoreScope
    from eventsmode.models.activity import OperatorProfile
    from eventsmode.models.event import Event

logger = logging.getLogger(__name__)

SELECTION_TIMEOUT_SECONDS = 15.0


class SelectionState(StrEnum):
    AWAITING_CATEGORY = "awaiting_category"
    AWAITING_EVENT = "awaiting_event"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    EXPIRED = "expired"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset(
    {SelectionState.ACTIVE, SelectionState.EXPIRED, SelectionState.ABORTED}
)


@dataclass(frozen=True)
class StartedActivity:
    """What a successful flow hands back to the UI."""

    activity_id: str
    event: Event
    operator: OperatorProfile
    channels: ProvisionedChannels


async def check_entry(
    stores: StoreScope, guild_id: str, user_id: str
) -> tuple[OperatorProfile, list[Event]]:
    """Verify the operator may open a flow; return their profile and the catalog.

    Raises OperatorNotHired, AlreadyActive or EmptyCatalog.
    """
    async with stores() as repo:
        operator = await repo.find_operator(guild_id, user_id)
        if operator is None or not operator.is_hired:
            raise OperatorNotHired
        if await repo.find_activity_by_operator(guild_id, user_id) is not None:
            raise AlreadyActive
        events = await repo.list_events(guild_id)
    if not events:
        raise EmptyCatalog
    return operator, events


class SelectionFlow:
    """One operator's walk from "pick a category" to a running activity."""

    def __init__(
        self,
        *,
        operator: OperatorProfile,
        events: list[Event],
        stores: StoreScope,
        tracker: ActivityTracker,
        channels: ChannelProvider,
        audit: AuditSink,
        timeout_seconds: float = SELECTION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.operator = operator
        self.events = events
        self.stores = stores
        self.tracker = tracker
        self.channels = channels
        self.audit = audit
        self.timeout_seconds = timeout_seconds
        self._clock = clock

        self.state = SelectionState.AWAITING_CATEGORY
        self.deadline = clock() + timeout_seconds
        self.category: str | None = None
        self.event: Event | None = None
        self.started: StartedActivity | None = None
        self.error: EventsmodeError | None = None

    @property
    def guild_id(self) -> str:
        return self.operator.guild_id

    @property
    def categories(self) -> list[str]:
        """Distinct categories, sorted for a stable select menu."""
        return sorted({event.category for event in self.events})

    @property
    def events_in_category(self) -> list[Event]:
        return [event for event in self.events if event.category == self.category]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    # --- Timeout ---

    def _deadline_passed(self) -> bool:
        return self._clock() >= self.deadline

    def expire(self) -> bool:
        """Time out the current awaiting step. Returns True if the flow expired now."""
        if self.state not in (SelectionState.AWAITING_CATEGORY, SelectionState.AWAITING_EVENT):
            return False
        logger.info(
            "selection_expired guild_id=%s user_id=%s state=%s",
            self.guild_id,
            self.operator.user_id,
            self.state,
        )
        self.state = SelectionState.EXPIRED
        return True

    def _accepts(self, state: SelectionState) -> bool:
        if self.state != state:
            logger.debug(
                "selection_ignored guild_id=%s user_id=%s state=%s expected=%s",
                self.guild_id,
                self.operator.user_id,
                self.state,
                state,
            )
            return False
        if self._deadline_passed():
            self.expire()
            return False
        return True

    def _abort(self, error: EventsmodeError) -> EventsmodeError:
        self.state = SelectionState.ABORTED
        self.error = error
        logger.info(
            "selection_aborted guild_id=%s user_id=%s reason=%s",
            self.guild_id,
            self.operator.user_id,
            type(error).__name__,
        )
        return error

    # --- Transitions ---

    def choose_category(self, category: str) -> bool:
        """Accept the category selection. Returns False if it was ignored.

        Raises EventNotFound (and aborts) for a category the catalog never offered.
        """
        if not self._accepts(SelectionState.AWAITING_CATEGORY):
            return False
        if category not in self.categories:
            raise self._abort(EventNotFound())
        self.category = category
        self.state = SelectionState.AWAITING_EVENT
        self.deadline = self._clock() + self.timeout_seconds
        return True

    async def choose_event(self, name: str) -> StartedActivity | None:
        """Accept the event selection and provision the activity.

        Returns None if the selection was ignored. Raises a lifecycle error
        (after moving to ABORTED) if provisioning fails.
        """
        if not self._accepts(SelectionState.AWAITING_EVENT):
            return None
        self.state = SelectionState.PROVISIONING
        try:
            started = await self._provision(name)
        except EventsmodeError as exc:
            raise self._abort(exc) from exc
        except Exception:  # Unexpected store or backend error: fail closed
            self.state = SelectionState.ABORTED
            raise
        self.started = started
        self.state = SelectionState.ACTIVE
        return started

    async def _provision(self, name: str) -> StartedActivity:
        assert self.category is not None
        async with self.stores() as repo:
            # Hire status may have changed while the menus were open.
            operator = await repo.find_operator(self.guild_id, self.operator.user_id)
            if operator is None or not operator.is_hired:
                raise OperatorNotHired
            event = await repo.find_event(self.guild_id, self.category, name)
            if event is None:
                raise EventNotFound
            settings = await repo.get_guild_settings(self.guild_id)
            guild_bans = await repo.list_guild_bans(self.guild_id)
            global_bans = await repo.list_global_bans()
            if await repo.find_activity_by_operator(self.guild_id, operator.user_id):
                raise AlreadyActive
        self.event = event

        category_id = settings.eventsmode_category_id
        if not settings.is_channel_configured or not category_id:
            raise ChannelNotConfigured
        if not await self.channels.backend.has_category(category_id):
            raise ChannelNotConfigured("The configured eventsmode category could not be found.")

        deny_set = compute_deny_set(guild_bans, global_bans)
        if operator.user_id in deny_set:
            raise OperatorBanned

        channels = await self.channels.provision(category_id, event, operator.user_id, deny_set)
        try:
            activity_id = await self.tracker.begin_activity(
                event, operator, channels.voice_channel_id, channels.text_channel_id
            )
        except BaseException:
            # Registration lost a race or the store failed: no activity, no channels.
            await self.channels.rollback(channels.ids)
            raise

        await emit_quietly(
            self.audit,
            self.guild_id,
            f"<@{operator.user_id}> started event **{event.label}** "
            f"(voice <#{channels.voice_channel_id}>, text <#{channels.text_channel_id}>)",
        )
        return StartedActivity(
            activity_id=activity_id,
            event=event,
            operator=operator,
            channels=channels,
        )
