"""Arcade: every running game instance behind one clock and one ledger.

Timed games get a ``GameSession`` subscribed to the clock. Ladder games and
auctions are untimed and only react to player actions (plus the auction's
house bidder).
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from roundhouse.core.auction import UniqueBidAuction
from roundhouse.core.catalog import enabled_games
from roundhouse.core.clock import Clock, IntervalClock
from roundhouse.core.errors import UnknownGame
from roundhouse.core.event_bus import EventBus
from roundhouse.core.ladder import LadderGame
from roundhouse.core.ledger import (
    BalanceAuthority,
    HttpBalanceAuthority,
    InMemoryBalanceAuthority,
    LedgerClient,
)
from roundhouse.core.session import GameSession

if TYPE_CHECKING:
    from collections.abc import Iterable

    from roundhouse.config import Settings
    from roundhouse.models.games import GameDefinition

logger = logging.getLogger(__name__)


def build_authority(settings: Settings) -> BalanceAuthority:
    """HTTP authority when a ledger URL is configured, in-memory otherwise."""
    if settings.uses_remote_ledger:
        logger.info("ledger_authority=http url=%s", settings.roundhouse_ledger_url)
        return HttpBalanceAuthority(
            settings.roundhouse_ledger_url, token=settings.roundhouse_ledger_token
        )
    logger.info(
        "ledger_authority=memory starting_balance=%d", settings.roundhouse_starting_balance
    )
    return InMemoryBalanceAuthority(starting_balance=settings.roundhouse_starting_balance)


class Arcade:
    """Registry of game instances keyed by catalog id."""

    def __init__(
        self,
        definitions: Iterable[GameDefinition],
        ledger: LedgerClient,
        clock: Clock,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
        history_size: int = 30,
        big_win_threshold: int = 10_000,
    ) -> None:
        self.ledger = ledger
        self.clock = clock
        self.event_bus = event_bus
        self.definitions: dict[str, GameDefinition] = {}
        self.sessions: dict[str, GameSession] = {}
        self.ladders: dict[str, LadderGame] = {}
        self.auctions: dict[str, UniqueBidAuction] = {}

        for definition in definitions:
            self.definitions[definition.id] = definition
            if definition.kind == "fixed_odds":
                session = GameSession(
                    definition,
                    ledger,
                    event_bus=event_bus,
                    rng=rng,
                    history_size=history_size,
                    big_win_threshold=big_win_threshold,
                )
                self.sessions[definition.id] = session
                clock.subscribe(session.on_tick)
            elif definition.kind == "ladder":
                self.ladders[definition.id] = LadderGame(
                    definition, ledger, event_bus=event_bus, rng=rng, history_size=history_size
                )
            else:
                self.auctions[definition.id] = UniqueBidAuction(
                    definition, ledger, event_bus=event_bus, rng=rng
                )
        logger.info(
            "arcade_ready sessions=%d ladders=%d auctions=%d",
            len(self.sessions),
            len(self.ladders),
            len(self.auctions),
        )

    @classmethod
    def from_settings(cls, settings: Settings, event_bus: EventBus | None = None) -> Arcade:
        event_bus = event_bus or EventBus()
        ledger = LedgerClient(
            build_authority(settings),
            timeout_seconds=settings.roundhouse_ledger_timeout_seconds,
            credit_retries=settings.roundhouse_credit_retries,
            retry_delay_seconds=settings.roundhouse_credit_retry_delay_seconds,
            event_bus=event_bus,
        )
        return cls(
            enabled_games(settings.roundhouse_enabled_games),
            ledger,
            IntervalClock(settings.roundhouse_tick_seconds),
            event_bus=event_bus,
            history_size=settings.roundhouse_history_size,
            big_win_threshold=settings.roundhouse_big_win_threshold,
        )

    def definition(self, game_id: str) -> GameDefinition:
        definition = self.definitions.get(game_id)
        if definition is None:
            raise UnknownGame(f"no game {game_id!r}")
        return definition

    def session(self, game_id: str) -> GameSession:
        session = self.sessions.get(game_id)
        if session is None:
            raise UnknownGame(f"no timed game {game_id!r}")
        return session

    def ladder(self, game_id: str) -> LadderGame:
        ladder = self.ladders.get(game_id)
        if ladder is None:
            raise UnknownGame(f"no ladder game {game_id!r}")
        return ladder

    def ladder_for_run(self, run_id: str) -> LadderGame:
        for ladder in self.ladders.values():
            if ladder.owns(run_id):
                return ladder
        raise UnknownGame(f"no ladder run {run_id!r}")

    def auction(self, game_id: str) -> UniqueBidAuction:
        auction = self.auctions.get(game_id)
        if auction is None:
            raise UnknownGame(f"no auction {game_id!r}")
        return auction

    def start(self, auto_tick: bool = True, auction_bot: bool = True) -> None:
        """Start the clock and house bidders. Must run inside the event loop."""
        if auto_tick and isinstance(self.clock, IntervalClock):
            self.clock.start()
        if auction_bot:
            for auction in self.auctions.values():
                auction.start_bidder()

    async def stop(self) -> None:
        """Stop ticking, stop bidders, let in-flight settlements finish."""
        if isinstance(self.clock, IntervalClock):
            self.clock.shutdown()
        for auction in self.auctions.values():
            await auction.stop_bidder()
        for session in self.sessions.values():
            await session.drain()
        await self.ledger.drain()
        authority = self.ledger.authority
        if isinstance(authority, HttpBalanceAuthority):
            await authority.aclose()
        logger.info("arcade_stopped ticks=%d", self.clock.ticks)
