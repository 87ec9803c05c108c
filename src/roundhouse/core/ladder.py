"""Progressive ladder. Climb row by row, cash out before hitting danger.

A run is N rows of W cells with exactly D dangerous cells per row, placed
uniformly at random when the stake commits. Each reveal picks one column of
the current row: danger ends the run with nothing, a safe cell moves the run
up one step. Cashing out after at least one safe step pays
``stake * multiplier_table[step - 1]``; clearing the last row pays the top of
the table automatically.

The danger map never leaves this module while a run is in play. Snapshots
only expose it once the run is over. Finished runs are released and live on
only as snapshots in the bounded history.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections import deque
from decimal import Decimal
from typing import TYPE_CHECKING

from roundhouse.core.errors import InvalidSelection, PayoutLost, UnknownGame
from roundhouse.core.payout import compute_payout
from roundhouse.models.ladder import LadderState, LadderStatus
from roundhouse.models.wager import WagerOutcome

if TYPE_CHECKING:
    from roundhouse.core.event_bus import EventBus
    from roundhouse.core.ledger import LedgerClient
    from roundhouse.models.games import GameDefinition, LadderConfig

logger = logging.getLogger(__name__)


def generate_danger_map(config: LadderConfig, rng: random.Random) -> list[list[bool]]:
    """``step_count`` rows, each with exactly ``danger_per_step`` True cells."""
    board: list[list[bool]] = []
    for _ in range(config.step_count):
        row = [False] * config.board_width
        for col in rng.sample(range(config.board_width), config.danger_per_step):
            row[col] = True
        board.append(row)
    return board


def survival_probability(config: LadderConfig, steps: int | None = None) -> float:
    """Chance of clearing ``steps`` rows (all of them by default) with blind picks."""
    steps = config.step_count if steps is None else steps
    return config.survival_per_step**steps


class LadderRun:
    """One player's attempt. Pure state machine; the ledger lives in LadderGame."""

    def __init__(
        self,
        game_id: str,
        player_id: str,
        preset: str,
        config: LadderConfig,
        stake: int,
        danger_map: list[list[bool]],
        run_id: str | None = None,
    ) -> None:
        self.run_id = run_id or uuid.uuid4().hex
        self.game_id = game_id
        self.player_id = player_id
        self.preset = preset
        self.config = config
        self.stake = stake
        self._danger_map = danger_map
        self.current_step = 0
        self.status: LadderStatus = "playing"
        self.payout = 0
        self.revealed: list[tuple[int, int, bool]] = []

    @property
    def finished(self) -> bool:
        return self.status != "playing"

    @property
    def current_multiplier(self) -> Decimal:
        if self.current_step == 0:
            return Decimal("1")
        return self.config.multiplier_table[self.current_step - 1]

    def reveal(self, column: int) -> bool:
        """Pick ``column`` on the current row. Returns True if the cell was safe."""
        if self.finished:
            raise InvalidSelection(f"run {self.run_id} is already {self.status}")
        if not 0 <= column < self.config.board_width:
            raise InvalidSelection(
                f"column must be in [0, {self.config.board_width}), got {column}"
            )
        row = self.current_step
        safe = not self._danger_map[row][column]
        self.revealed.append((row, column, safe))
        if not safe:
            self.status = "lost"
            self.payout = 0
            return False
        self.current_step += 1
        if self.current_step == self.config.step_count:
            self.status = "won"
            self.payout = compute_payout(self.stake, self.current_multiplier)
        return True

    def cash_out(self) -> int:
        """End the run at the current step and return the payout owed."""
        if self.finished:
            raise InvalidSelection(f"run {self.run_id} is already {self.status}")
        if self.current_step < 1:
            raise InvalidSelection("cash out needs at least one safe step")
        self.status = "won"
        self.payout = compute_payout(self.stake, self.current_multiplier)
        return self.payout

    def snapshot(self) -> LadderState:
        return LadderState(
            run_id=self.run_id,
            game_id=self.game_id,
            player_id=self.player_id,
            preset=self.preset,
            stake=self.stake,
            current_step=self.current_step,
            step_count=self.config.step_count,
            board_width=self.config.board_width,
            danger_per_step=self.config.danger_per_step,
            multiplier_table=list(self.config.multiplier_table),
            status=self.status,
            payout=self.payout,
            revealed=list(self.revealed),
            danger_map=[list(row) for row in self._danger_map] if self.finished else None,
        )


class LadderGame:
    """All ladder runs of one catalog game (treasure hunt, road crossing ...)."""

    def __init__(
        self,
        definition: GameDefinition,
        ledger: LedgerClient,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
        history_size: int = 30,
    ) -> None:
        if definition.kind != "ladder":
            msg = f"LadderGame runs ladder games, got {definition.kind!r} for {definition.id}"
            raise ValueError(msg)
        self.definition = definition
        self._ledger = ledger
        self._bus = event_bus
        self._rng = rng or random.Random()
        self._runs: dict[str, LadderRun] = {}
        # Reveals and cash-outs on the same run must not interleave around the credit.
        self._locks: dict[str, asyncio.Lock] = {}
        self._history: deque[LadderState] = deque(maxlen=history_size)

    @property
    def game_id(self) -> str:
        return self.definition.id

    @property
    def presets(self) -> dict[str, LadderConfig]:
        return self.definition.ladder_presets

    def history(self) -> list[LadderState]:
        return list(self._history)

    def owns(self, run_id: str) -> bool:
        return run_id in self._runs or self._finished(run_id) is not None

    def get(self, run_id: str) -> LadderState:
        run = self._runs.get(run_id)
        if run is not None:
            return run.snapshot()
        state = self._finished(run_id)
        if state is None:
            raise UnknownGame(f"no ladder run {run_id!r} in {self.game_id}")
        return state

    def active_runs(self, player_id: str | None = None) -> list[LadderState]:
        return [
            run.snapshot()
            for run in self._runs.values()
            if not run.finished and player_id in (None, run.player_id)
        ]

    async def start(self, player_id: str, stake: int, preset: str) -> LadderState:
        """Debit the stake, then lay out a fresh danger map."""
        config = self.presets.get(preset)
        if config is None:
            raise InvalidSelection(f"{self.game_id}: unknown preset {preset!r}")
        if stake <= 0 or stake < self.definition.min_bet:
            raise InvalidSelection(
                f"{self.game_id}: stake must be at least {self.definition.min_bet}, got {stake}"
            )
        run_id = uuid.uuid4().hex
        # Raises InsufficientFunds / LedgerTimeout; no run exists in that case.
        await self._ledger.debit(player_id, stake, f"{self.game_id}:stake", f"{run_id}:stake")

        run = LadderRun(
            self.game_id,
            player_id,
            preset,
            config,
            stake,
            generate_danger_map(config, self._rng),
            run_id=run_id,
        )
        self._runs[run_id] = run
        self._locks[run_id] = asyncio.Lock()
        logger.info(
            "ladder_started game=%s run=%s player=%s preset=%s stake=%d",
            self.game_id,
            run_id,
            player_id,
            preset,
            stake,
        )
        return run.snapshot()

    async def reveal(self, run_id: str, column: int) -> LadderState:
        run = self._run(run_id)
        async with self._locks[run_id]:
            safe = run.reveal(column)
            logger.info(
                "ladder_reveal run=%s step=%d column=%d safe=%s",
                run_id,
                run.current_step,
                column,
                safe,
            )
            if run.finished:
                await self._finish(run)
        return run.snapshot()

    async def cash_out(self, run_id: str) -> LadderState:
        run = self._run(run_id)
        async with self._locks[run_id]:
            run.cash_out()
            await self._finish(run)
        return run.snapshot()

    def _run(self, run_id: str) -> LadderRun:
        run = self._runs.get(run_id)
        if run is not None:
            return run
        state = self._finished(run_id)
        if state is not None:
            raise InvalidSelection(f"run {run_id} is already {state.status}")
        raise UnknownGame(f"no ladder run {run_id!r} in {self.game_id}")

    def _finished(self, run_id: str) -> LadderState | None:
        return next((state for state in self._history if state.run_id == run_id), None)

    async def _finish(self, run: LadderRun) -> None:
        if run.payout > 0:
            try:
                await self._ledger.credit(
                    run.player_id,
                    run.payout,
                    f"{self.game_id}:cashout",
                    f"{run.run_id}:payout",
                )
            except PayoutLost:
                logger.error("ladder_payout_lost run=%s payout=%d", run.run_id, run.payout)

        self._history.appendleft(run.snapshot())
        self._runs.pop(run.run_id, None)
        self._locks.pop(run.run_id, None)
        outcome = WagerOutcome(
            game_id=self.game_id,
            round_id=0,
            player_id=run.player_id,
            asset=run.preset,
            selection=f"step:{run.current_step}",
            result="win" if run.status == "won" else "loss",
            stake=run.stake,
            multiplier=run.current_multiplier if run.status == "won" else Decimal("0"),
            payout=run.payout,
            detail={"run_id": run.run_id, "steps": run.current_step},
        )
        logger.info(
            "ladder_finished run=%s status=%s steps=%d payout=%d",
            run.run_id,
            run.status,
            run.current_step,
            run.payout,
        )
        if self._bus is not None:
            self._bus.publish_nowait("wager.outcome", outcome.model_dump(mode="json"))
