"""Audit sink backed by the event bus.

Emission is fire-and-forget: a failure to publish is logged and swallowed so
it can never undo a settlement that already happened.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from eventsmode.core.event_bus import AUDIT_MESSAGE

if TYPE_CHECKING:
    from eventsmode.core.event_bus import EventBus
    from eventsmode.core.ports import AuditSink

logger = logging.getLogger(__name__)


class EventBusAuditSink:
    def __init__(self, event_bus: EventBus) -> None:
        self.event_bus = event_bus

    async def emit(self, guild_id: str, message: str) -> None:
        try:
            delivered = await self.event_bus.publish(
                AUDIT_MESSAGE, {"guild_id": guild_id, "message": message}
            )
        except Exception:  # Audit is best-effort
            logger.exception("audit_emit_failed guild_id=%s", guild_id)
            return
        if delivered == 0:
            logger.info("audit_unrouted guild_id=%s message=%s", guild_id, message)


async def emit_quietly(sink: AuditSink, guild_id: str, message: str) -> None:
    """Emit through any AuditSink, logging instead of raising on failure."""
    try:
        await sink.emit(guild_id, message)
    except Exception:  # Audit is best-effort
        logger.exception("audit_emit_failed guild_id=%s", guild_id)
