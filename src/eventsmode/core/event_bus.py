"""In-memory async event bus between the lifecycle core and its outputs.

The core publishes audit lines; the Discord bot subscribes and forwards them
to guild log channels. Events are fire-and-forget: with no subscriber they
are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)

AUDIT_MESSAGE = "audit.message"


class EventBus:
    """Async pub/sub keyed by topic; ``None`` subscribes to every topic.

    Usage:
        bus = EventBus()

        async with bus.subscribe(AUDIT_MESSAGE) as sub:
            async for event in sub:
                ...

        await bus.publish(AUDIT_MESSAGE, {"guild_id": "1", "message": "..."})
    """

    def __init__(self) -> None:
        self._queues: dict[str | None, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)

    async def publish(self, topic: str, data: dict[str, Any]) -> int:
        """Deliver to topic subscribers and catch-all subscribers.

        Returns how many queues accepted the event.
        """
        envelope = {"type": topic, "data": data}
        delivered = 0
        for queue in [*self._queues.get(topic, []), *self._queues.get(None, [])]:
            try:
                queue.put_nowait(envelope)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("event_bus_dropped topic=%s reason=slow_subscriber", topic)
        return delivered

    def subscribe(self, topic: str | None = None, max_size: int = 100) -> Subscription:
        """Create a subscription; enter it as an async context manager to start receiving."""
        return Subscription(self, asyncio.Queue(maxsize=max_size), topic)

    def _attach(self, queue: asyncio.Queue[dict[str, Any]], topic: str | None) -> None:
        self._queues[topic].append(queue)

    def _detach(self, queue: asyncio.Queue[dict[str, Any]], topic: str | None) -> None:
        with contextlib.suppress(ValueError):
            self._queues[topic].remove(queue)

    @property
    def subscriber_count(self) -> int:
        return sum(len(queues) for queues in self._queues.values())


class Subscription:
    """Async context manager + async iterator over one subscriber queue."""

    def __init__(
        self,
        bus: EventBus,
        queue: asyncio.Queue[dict[str, Any]],
        topic: str | None,
    ) -> None:
        self._bus = bus
        self._queue = queue
        self._topic = topic
        self._active = False

    async def __aenter__(self) -> Subscription:
        self._bus._attach(self._queue, self._topic)
        self._active = True
        return self

    async def __aexit__(self, *args: object) -> None:
        self._active = False
        self._bus._detach(self._queue, self._topic)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> dict[str, Any]:
        if not self._active:
            raise StopAsyncIteration
        return await self._queue.get()

    async def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Next event, or None if *timeout* elapses first."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None
