"""In-memory async event bus for outcome and phase notifications.

Pub/sub pattern: sessions publish, SSE endpoints and tests subscribe.
Each subscriber gets an asyncio.Queue. Events are fire-and-forget —
if no subscribers are listening, events are silently dropped.

Publishing never suspends, so it is safe to call from inside a scheduler
tick. ``publish`` is kept awaitable for call sites that already live in
coroutines.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

Envelope = dict[str, Any]


class EventBus:
    """Async pub/sub event bus.

    Usage:
        bus = EventBus()

        # Subscriber (SSE endpoint)
        async with bus.subscribe("wager.outcome") as sub:
            event = await sub.get(timeout=15)

        # Publisher (game session)
        bus.publish_nowait("wager.outcome", {"game_id": "coin_flip", ...})
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[Envelope]]] = defaultdict(list)
        self._wildcard_subscribers: list[asyncio.Queue[Envelope]] = []
        self._sequence = itertools.count(1)

    def publish_nowait(self, event_type: str, data: dict[str, Any]) -> int:
        """Deliver an event to typed + wildcard subscribers without suspending.

        Returns the number of subscribers that received the event.
        """
        envelope: Envelope = {
            "type": event_type,
            "seq": next(self._sequence),
            "at": datetime.now(UTC).isoformat(),
            "data": data,
        }
        targets = [*self._subscribers.get(event_type, []), *self._wildcard_subscribers]
        count = 0
        for queue in targets:
            try:
                queue.put_nowait(envelope)
                count += 1
            except asyncio.QueueFull:
                logger.warning("event_dropped type=%s reason=slow_subscriber", event_type)
        return count

    async def publish(self, event_type: str, data: dict[str, Any]) -> int:
        return self.publish_nowait(event_type, data)

    def subscribe(self, event_type: str | None = None, max_size: int = 100) -> Subscription:
        """Create a subscription for one event type (or all events if None).

        Use the returned Subscription as an async context manager so the
        queue is always unregistered.
        """
        queue: asyncio.Queue[Envelope] = asyncio.Queue(maxsize=max_size)
        return Subscription(self, queue, event_type)

    def _register(self, queue: asyncio.Queue[Envelope], event_type: str | None) -> None:
        if event_type is None:
            self._wildcard_subscribers.append(queue)
        else:
            self._subscribers[event_type].append(queue)

    def _unregister(self, queue: asyncio.Queue[Envelope], event_type: str | None) -> None:
        if event_type is None:
            with contextlib.suppress(ValueError):
                self._wildcard_subscribers.remove(queue)
        else:
            with contextlib.suppress(ValueError):
                self._subscribers[event_type].remove(queue)

    @property
    def subscriber_count(self) -> int:
        """Total number of active subscriptions."""
        typed = sum(len(subs) for subs in self._subscribers.values())
        return typed + len(self._wildcard_subscribers)


class Subscription:
    """An active subscription. Async context manager + async iterator."""

    def __init__(
        self,
        bus: EventBus,
        queue: asyncio.Queue[Envelope],
        event_type: str | None,
    ) -> None:
        self._bus = bus
        self._queue = queue
        self._event_type = event_type
        self._active = False

    async def __aenter__(self) -> Subscription:
        self._bus._register(self._queue, self._event_type)
        self._active = True
        return self

    async def __aexit__(self, *args: object) -> None:
        self._active = False
        self._bus._unregister(self._queue, self._event_type)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Envelope:
        if not self._active:
            raise StopAsyncIteration
        try:
            return await self._queue.get()
        except asyncio.CancelledError:
            raise StopAsyncIteration from None

    async def get(self, timeout: float | None = None) -> Envelope | None:
        """Next event, or None if nothing arrives within ``timeout`` seconds."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None

    def drain(self) -> list[Envelope]:
        """Everything already queued, without waiting."""
        events: list[Envelope] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events
