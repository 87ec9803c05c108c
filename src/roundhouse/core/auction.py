"""Lowest-unique-bid auction.

Every bid goes into an append-only log. The winner is recomputed from the
whole log on every read: among values bid exactly once, the smallest wins.
A value that was ever bid twice is out for good, even if nobody bids it
again. The house bidder keeps the board moving by appending a random value
at a fixed interval.

Player bids cost the entry fee, debited before the bid is appended. The
jackpot is shown to players but paid out by whoever closes the auction.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import uuid
from collections import Counter
from collections.abc import Iterable
from typing import TYPE_CHECKING

from roundhouse.core.errors import InvalidSelection
from roundhouse.models.auction import BOT_BIDDER_ID, AuctionView, BidEntry

if TYPE_CHECKING:
    from roundhouse.core.event_bus import EventBus
    from roundhouse.core.ledger import LedgerClient
    from roundhouse.models.games import GameDefinition

logger = logging.getLogger(__name__)


def lowest_unique_bid(entries: Iterable[BidEntry]) -> BidEntry | None:
    """The entry holding the smallest value that appears exactly once."""
    entries = list(entries)
    counts = Counter(entry.value for entry in entries)
    unique = [entry for entry in entries if counts[entry.value] == 1]
    if not unique:
        return None
    return min(unique, key=lambda entry: entry.value)


def decade_band(value: int) -> tuple[int, int]:
    """(low, high) bounds of the ten-wide band ``value`` falls in."""
    low = (value // 10) * 10
    return max(low, 1), low + 10


class UniqueBidAuction:
    """One continuous auction instance."""

    def __init__(
        self,
        definition: GameDefinition,
        ledger: LedgerClient,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if definition.kind != "auction" or definition.auction is None:
            msg = f"UniqueBidAuction runs auction games, got {definition.kind!r}"
            raise ValueError(msg)
        self.definition = definition
        self.config = definition.auction
        self._ledger = ledger
        self._bus = event_bus
        self._rng = rng or random.Random()
        self._entries: list[BidEntry] = []
        self._lock = asyncio.Lock()
        self._bidder: asyncio.Task[None] | None = None

    @property
    def game_id(self) -> str:
        return self.definition.id

    def entries(self) -> list[BidEntry]:
        return list(self._entries)

    def winner(self) -> BidEntry | None:
        return lowest_unique_bid(self._entries)

    def status_hint(self) -> str:
        """Where the winning value sits, without giving the value away."""
        leader = self.winner()
        if leader is None:
            return "no unique bid yet"
        low, high = decade_band(leader.value)
        return f"between {low} and {high}"

    def view(self, viewer_id: str) -> AuctionView:
        leader = self.winner()
        return AuctionView(
            game_id=self.game_id,
            entry_fee=self.config.entry_fee,
            jackpot=self.config.jackpot,
            total_bids=len(self._entries),
            own_bids=[e.value for e in self._entries if e.is_own_bid(viewer_id)],
            leading=leader is not None and leader.is_own_bid(viewer_id),
            status_hint=self.status_hint(),
        )

    async def place_bid(self, player_id: str, value: int) -> BidEntry:
        """Charge the entry fee, then append the bid."""
        if value <= 0:
            raise InvalidSelection(f"bid must be a positive whole number, got {value}")
        if player_id == BOT_BIDDER_ID:
            raise InvalidSelection(f"{BOT_BIDDER_ID!r} is reserved")
        key = f"{self.game_id}:bid:{player_id}:{uuid.uuid4().hex}"
        # InsufficientFunds / LedgerTimeout propagate; nothing is appended.
        await self._ledger.debit(player_id, self.config.entry_fee, f"{self.game_id}:fee", key)
        entry = await self._append(player_id, value)
        logger.info("bid_placed game=%s player=%s seq=%d", self.game_id, player_id, entry.sequence)
        return entry

    async def bot_bid(self) -> BidEntry:
        value = self._rng.randint(self.config.bot_min_value, self.config.bot_max_value)
        entry = await self._append(BOT_BIDDER_ID, value)
        logger.debug("bot_bid game=%s seq=%d", self.game_id, entry.sequence)
        return entry

    async def _append(self, bidder_id: str, value: int) -> BidEntry:
        async with self._lock:
            before = self.winner()
            leader_before = before.sequence if before is not None else None
            entry = BidEntry(sequence=len(self._entries), value=value, bidder_id=bidder_id)
            self._entries.append(entry)
            after = self.winner()
            leader_after = after.sequence if after is not None else None
        if self._bus is not None:
            self._bus.publish_nowait(
                "auction.bid",
                {"game_id": self.game_id, "total_bids": len(self._entries)},
            )
            if leader_before != leader_after:
                self._bus.publish_nowait(
                    "auction.status",
                    {"game_id": self.game_id, "status_hint": self.status_hint()},
                )
        return entry

    # --- House bidder ---

    @property
    def bidder_running(self) -> bool:
        return self._bidder is not None and not self._bidder.done()

    def start_bidder(self) -> None:
        if self.bidder_running:
            return
        self._bidder = asyncio.get_running_loop().create_task(self._bid_forever())
        logger.info(
            "auction_bidder_started game=%s interval=%.1fs",
            self.game_id,
            self.config.bot_interval_seconds,
        )

    async def stop_bidder(self) -> None:
        if self._bidder is None:
            return
        self._bidder.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._bidder
        self._bidder = None
        logger.info("auction_bidder_stopped game=%s", self.game_id)

    async def _bid_forever(self) -> None:
        while True:
            await asyncio.sleep(self.config.bot_interval_seconds)
            try:
                await self.bot_bid()
            except Exception:
                logger.exception("auction_bot_bid_failed game=%s", self.game_id)
