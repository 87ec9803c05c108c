"""Timed game session: one fixed-odds game instance driven by a round scheduler.

Lifecycle of a round:

1. **preparing**: ``place_wager`` fills the round's wager book. Invalid
   wagers are rejected locally, before any ledger call.
2. **round start** (preparing → running): every wager in the book gets a
   settlement task: debit → resolve → credit → notify, strictly in that
   order per wager, concurrently across wagers. A declined debit ends the
   settlement with no resolution and no credit.
3. **results**: settlements still waiting for their debit are voided (a
   debit that commits afterwards is refunded, never resolved). The round's
   draw and outcomes are published and recorded in the history.
4. **round end** (results → preparing): the book for that round is
   dropped; a new one opens for the next round id.

Settlement tasks never block the clock. Outcomes are final once produced.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from roundhouse.core.errors import InvalidSelection, PayoutLost, WagerError
from roundhouse.core.odds import FixedOddsResolver
from roundhouse.core.scheduler import RoundScheduler
from roundhouse.models.round import Phase, PhaseTransition, RoundSnapshot
from roundhouse.models.wager import RoundRecord, Wager, WagerOutcome

if TYPE_CHECKING:
    import random

    from roundhouse.core.event_bus import EventBus
    from roundhouse.core.ledger import LedgerClient
    from roundhouse.models.games import GameDefinition
    from roundhouse.models.ledger import LedgerTransaction

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[WagerOutcome], None]

SettlementStage = Literal["pending_debit", "declined", "staked", "resolved", "refunded"]


@dataclass
class Settlement:
    """Progress of one wager through debit → resolve → credit → notify."""

    wager: Wager
    stage: SettlementStage = "pending_debit"
    debit: LedgerTransaction | None = None
    outcome: WagerOutcome | None = None
    voided: bool = False
    notified: bool = False
    error: str = ""


@dataclass
class RoundBook:
    """Wagers and settlements belonging to a single round id."""

    round_id: int
    wagers: dict[tuple[str, str], Wager] = field(default_factory=dict)
    settlements: dict[tuple[str, str], Settlement] = field(default_factory=dict)
    winner: str | None = None
    record: RoundRecord | None = None
    declined: int = 0
    voided: int = 0


class GameSession:
    """Orchestrates scheduler, ledger and resolver for one timed game."""

    def __init__(
        self,
        definition: GameDefinition,
        ledger: LedgerClient,
        event_bus: EventBus | None = None,
        on_outcome: OutcomeCallback | None = None,
        rng: random.Random | None = None,
        history_size: int = 30,
        big_win_threshold: int = 10_000,
    ) -> None:
        if definition.kind != "fixed_odds" or definition.fixed_odds is None:
            msg = f"GameSession runs fixed_odds games, got {definition.kind!r} for {definition.id}"
            raise ValueError(msg)
        self.definition = definition
        self.config = definition.fixed_odds
        self.resolver = FixedOddsResolver(self.config, rng)
        self._ledger = ledger
        self._bus = event_bus
        self._on_outcome = on_outcome
        self._big_win_threshold = big_win_threshold
        # Ledger keys must stay unique across restarts and replicas.
        self.epoch = uuid.uuid4().hex[:12]
        self.scheduler = RoundScheduler(
            definition.timings,
            on_round_start=self._handle_round_start,
            on_round_end=self._handle_round_end,
            on_phase_change=self._handle_phase_change,
        )
        self._book = RoundBook(round_id=self.scheduler.round_id)
        self._tasks: set[asyncio.Task[None]] = set()
        self._history: deque[RoundRecord] = deque(maxlen=history_size)

    # --- Read side ---

    @property
    def game_id(self) -> str:
        return self.definition.id

    @property
    def phase(self) -> Phase:
        return self.scheduler.phase

    def snapshot(self) -> RoundSnapshot:
        return self.scheduler.snapshot()

    def wagers(self, player_id: str | None = None) -> list[Wager]:
        """Wagers in the current round's book."""
        return [w for w in self._book.wagers.values() if player_id in (None, w.player_id)]

    def history(self) -> list[RoundRecord]:
        """Most recent round first."""
        return list(self._history)

    @property
    def last_winner(self) -> str | None:
        return self._history[0].winner if self._history else None

    @property
    def pending_settlements(self) -> int:
        return len(self._tasks)

    # --- Inbound ---

    def place_wager(self, player_id: str, selection: str, amount: int, asset: str = "") -> Wager:
        """Add a wager to the current round. Raises InvalidSelection with no state change."""
        if self.scheduler.phase != "preparing":
            raise InvalidSelection(f"{self.game_id}: wagers close when the round starts")
        if amount <= 0:
            raise InvalidSelection(f"{self.game_id}: amount must be positive, got {amount}")
        if amount < self.definition.min_bet:
            raise InvalidSelection(
                f"{self.game_id}: minimum bet is {self.definition.min_bet}, got {amount}"
            )
        if selection not in self.config.selections:
            raise InvalidSelection(f"{self.game_id}: unknown selection {selection!r}")
        asset = self._wager_asset(selection, asset)

        key = (player_id, asset)
        if key in self._book.wagers:
            raise InvalidSelection(f"{self.game_id}: wager already placed for {key}")
        held = sum(1 for w in self._book.wagers.values() if w.player_id == player_id)
        if held >= self.config.max_wagers_per_player:
            raise InvalidSelection(
                f"{self.game_id}: at most {self.config.max_wagers_per_player} wagers per round"
            )

        wager = Wager(
            game_id=self.game_id,
            epoch=self.epoch,
            round_id=self._book.round_id,
            player_id=player_id,
            selection=selection,
            amount=amount,
            asset=asset,
        )
        self._book.wagers[key] = wager
        logger.info(
            "wager_placed game=%s round=%d player=%s selection=%s asset=%s amount=%d",
            self.game_id,
            wager.round_id,
            player_id,
            selection,
            asset or "-",
            amount,
        )
        self._publish("wager.placed", wager.model_dump(mode="json"))
        return wager

    def cancel_wager(self, player_id: str, asset: str = "", selection: str = "") -> Wager:
        """Withdraw a wager while the round is still preparing. Nothing was debited yet.

        Games keyed by selection identify the wager by ``selection``; ``asset``
        is accepted as an alias there.
        """
        if self.scheduler.phase != "preparing":
            raise InvalidSelection(f"{self.game_id}: wagers are locked once the round starts")
        if self.config.keyed_by_selection:
            asset = selection or asset
        wager = self._book.wagers.pop((player_id, asset), None)
        if wager is None:
            raise InvalidSelection(f"{self.game_id}: no wager to cancel for {player_id}")
        logger.info("wager_cancelled game=%s player=%s asset=%s", self.game_id, player_id, asset)
        return wager

    def _wager_asset(self, selection: str, asset: str) -> str:
        if self.config.assets:
            if asset not in self.config.assets:
                raise InvalidSelection(f"{self.game_id}: unknown asset {asset!r}")
            return asset
        if self.config.keyed_by_selection:
            return selection
        if asset:
            raise InvalidSelection(f"{self.game_id}: game has no assets, got {asset!r}")
        return ""

    # --- Clock ---

    async def on_tick(self) -> PhaseTransition | None:
        """Advance the round clock one second. Never waits on the ledger."""
        return self.scheduler.tick()

    async def drain(self) -> None:
        """Wait for every outstanding settlement task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Scheduler callbacks ---

    def _handle_round_start(self, transition: PhaseTransition) -> None:
        book = self._book
        for key, wager in book.wagers.items():
            settlement = Settlement(wager=wager)
            book.settlements[key] = settlement
            self._spawn(self._settle(book, settlement))
        logger.info(
            "round_started game=%s round=%d wagers=%d",
            self.game_id,
            transition.round_id,
            len(book.wagers),
        )

    def _handle_phase_change(self, transition: PhaseTransition) -> None:
        if transition.to_phase == "results":
            self._publish_results(transition.round_id)
        self._publish(
            "round.phase",
            {
                "game_id": self.game_id,
                **self.scheduler.snapshot().model_dump(mode="json"),
            },
        )

    def _handle_round_end(self, transition: PhaseTransition) -> None:
        self.on_round_end(transition.round_id)

    def on_round_end(self, round_id: int) -> bool:
        """Drop the wager book of ``round_id`` and open the next one.

        Returns False (and changes nothing) if that round was already closed,
        so a repeated call can never clear the next round's wagers.
        """
        if self._book.round_id != round_id:
            logger.warning(
                "round_end_ignored game=%s round=%d open_round=%d",
                self.game_id,
                round_id,
                self._book.round_id,
            )
            return False
        self._book = RoundBook(round_id=round_id + 1)
        logger.info("round_ended game=%s round=%d", self.game_id, round_id)
        return True

    def _publish_results(self, round_id: int) -> None:
        book = self._book
        if book.record is not None:
            return
        for settlement in book.settlements.values():
            if settlement.stage == "pending_debit":
                settlement.voided = True
                book.voided += 1
                logger.warning(
                    "settlement_voided game=%s round=%d player=%s reason=debit_pending",
                    self.game_id,
                    round_id,
                    settlement.wager.player_id,
                )
        if self.resolver.draws_per_round and book.winner is None:
            book.winner = self.resolver.draw_winner()

        book.record = RoundRecord(
            game_id=self.game_id,
            round_id=round_id,
            winner=book.winner,
            outcomes=[
                s.outcome for s in book.settlements.values() if s.notified and s.outcome
            ],
            declined=book.declined,
            voided=book.voided,
        )
        self._history.appendleft(book.record)
        self._publish("round.results", book.record.model_dump(mode="json"))

    # --- Settlement pipeline ---

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "settlement_crashed game=%s",
                self.game_id,
                exc_info=task.exception(),
            )

    async def _settle(self, book: RoundBook, settlement: Settlement) -> None:
        wager = settlement.wager
        try:
            settlement.debit = await self._ledger.debit(
                wager.player_id,
                wager.amount,
                f"{self.game_id}:stake",
                f"{wager.idempotency_base}:stake",
            )
        except WagerError as exc:
            settlement.stage = "declined"
            settlement.error = str(exc)
            book.declined += 1
            if book.record is not None:
                book.record.declined = book.declined
            logger.info(
                "wager_declined game=%s round=%d player=%s error=%s",
                self.game_id,
                wager.round_id,
                wager.player_id,
                type(exc).__name__,
            )
            self._publish(
                "wager.declined",
                {
                    "game_id": self.game_id,
                    "round_id": wager.round_id,
                    "player_id": wager.player_id,
                    "asset": wager.asset,
                    "error": type(exc).__name__,
                },
            )
            return

        if settlement.voided:
            await self._refund(settlement)
            return

        settlement.stage = "staked"
        winner: str | None = None
        if self.resolver.draws_per_round:
            if book.winner is None:
                book.winner = self.resolver.draw_winner()
            winner = book.winner
        resolution = self.resolver.resolve(wager, winner)
        settlement.outcome = WagerOutcome(
            game_id=self.game_id,
            round_id=wager.round_id,
            player_id=wager.player_id,
            asset=wager.asset,
            selection=wager.selection,
            result=resolution.result,
            stake=wager.amount,
            multiplier=resolution.multiplier,
            payout=resolution.payout,
            detail=resolution.detail,
        )
        settlement.stage = "resolved"

        if resolution.payout > 0:
            try:
                await self._ledger.credit(
                    wager.player_id,
                    resolution.payout,
                    f"{self.game_id}:{resolution.result}",
                    f"{wager.idempotency_base}:payout",
                )
            except PayoutLost:
                settlement.error = "payout_lost"
        self._notify(book, settlement)

    async def _refund(self, settlement: Settlement) -> None:
        wager = settlement.wager
        try:
            await self._ledger.credit(
                wager.player_id,
                wager.amount,
                f"{self.game_id}:void",
                f"{wager.idempotency_base}:void",
            )
        except PayoutLost:
            settlement.error = "refund_lost"
            return
        settlement.stage = "refunded"
        logger.info(
            "settlement_refunded game=%s round=%d player=%s amount=%d",
            self.game_id,
            wager.round_id,
            wager.player_id,
            wager.amount,
        )
        self._publish(
            "wager.voided",
            {
                "game_id": self.game_id,
                "round_id": wager.round_id,
                "player_id": wager.player_id,
                "asset": wager.asset,
                "refunded": wager.amount,
            },
        )

    def _notify(self, book: RoundBook, settlement: Settlement) -> None:
        outcome = settlement.outcome
        if settlement.notified or outcome is None:
            return
        settlement.notified = True
        if book.record is not None:
            book.record.outcomes.append(outcome)

        logger.info(
            "wager_resolved game=%s round=%d player=%s result=%s payout=%d",
            self.game_id,
            outcome.round_id,
            outcome.player_id,
            outcome.result,
            outcome.payout,
        )
        self._publish("wager.outcome", outcome.model_dump(mode="json"))
        if outcome.payout >= self._big_win_threshold:
            self._publish(
                "winner.announced",
                {
                    "game_id": self.game_id,
                    "player_id": outcome.player_id,
                    "amount": outcome.payout,
                },
            )
        if self._on_outcome is not None:
            try:
                self._on_outcome(outcome)
            except Exception:  # A broken listener must not undo a settled wager
                logger.exception("outcome_callback_failed game=%s", self.game_id)

    def _publish(self, event_type: str, data: dict[str, Any]) -> None:
        if self._bus is not None:
            self._bus.publish_nowait(event_type, data)
