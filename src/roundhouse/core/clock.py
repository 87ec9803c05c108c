"""Tick sources.

A clock fires once per second and awaits every subscribed handler in order.
Handlers are game sessions; each one advances its own round scheduler.

``ManualClock`` is advanced explicitly (tests, replays). ``IntervalClock`` is
driven by APScheduler on a fixed interval in the running event loop.

Handler errors are logged but never propagated so one broken game never stops
the clock for the others.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TickHandler = Callable[[], Awaitable[None]]

CLOCK_JOB_ID = "roundhouse_clock"


class Clock:
    """Monotonic tick counter with an ordered list of async handlers."""

    def __init__(self) -> None:
        self._handlers: list[TickHandler] = []
        self._ticks = 0

    @property
    def ticks(self) -> int:
        """Number of ticks fired since creation. Never decreases."""
        return self._ticks

    def subscribe(self, handler: TickHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: TickHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    async def tick(self) -> int:
        """Fire one tick. Returns the new tick count."""
        self._ticks += 1
        for handler in list(self._handlers):
            try:
                await handler()
            except Exception:  # Keep ticking the remaining games
                logger.exception("tick_handler_failed tick=%d", self._ticks)
        return self._ticks


class ManualClock(Clock):
    """A clock that only moves when told to."""

    async def advance(self, seconds: int = 1) -> int:
        for _ in range(seconds):
            await self.tick()
        return self._ticks


class IntervalClock(Clock):
    """A clock driven by an APScheduler interval job.

    Missed ticks are coalesced and never run concurrently with each other,
    so a slow tick delays the next one instead of overlapping it.
    """

    def __init__(self, interval_seconds: float = 1.0) -> None:
        super().__init__()
        self.interval_seconds = interval_seconds
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start ticking. Must be called from inside the running event loop."""
        if self.running:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=CLOCK_JOB_ID,
            name="Advance round clocks",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("clock_started interval=%.2fs", self.interval_seconds)

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("clock_stopped ticks=%d", self._ticks)
