"""Wager and outcome models: the input and output of a settlement."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

OutcomeKind = Literal["win", "loss", "push"]


class Wager(BaseModel):
    """A player's stake plus selection for one round.

    ``asset`` is empty for single-wager games. Multi-asset games (up/down on
    independent commodities, several numbers on one board) key each wager by
    its asset so one player can hold one wager per asset.

    ``epoch`` names the session that took the wager. Round ids restart with
    every session while the balance authority remembers keys across restarts
    and replicas, so the epoch keeps ledger keys from colliding.
    """

    model_config = ConfigDict(frozen=True)

    game_id: str
    epoch: str = ""
    round_id: int
    player_id: str
    selection: str
    amount: int = Field(gt=0)
    asset: str = ""
    placed_in_phase: Literal["preparing"] = "preparing"
    placed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> tuple[str, str]:
        return (self.player_id, self.asset)

    @property
    def idempotency_base(self) -> str:
        """Stable prefix for every ledger call this wager makes."""
        asset = self.asset or "-"
        scope = f"{self.game_id}:{self.epoch}" if self.epoch else self.game_id
        return f"{scope}:{self.round_id}:{self.player_id}:{asset}"


class WagerOutcome(BaseModel):
    """The resolved result of one wager. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    game_id: str
    round_id: int
    player_id: str
    asset: str = ""
    selection: str
    result: OutcomeKind
    stake: int
    multiplier: Decimal = Decimal("0")
    payout: int = 0
    detail: dict[str, Any] = Field(default_factory=dict)
    resolved_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RoundRecord(BaseModel):
    """One row of a game's round history."""

    game_id: str
    round_id: int
    winner: str | None = None
    outcomes: list[WagerOutcome] = Field(default_factory=list)
    declined: int = 0
    voided: int = 0
    finished_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_staked(self) -> int:
        return sum(o.stake for o in self.outcomes)

    @property
    def total_paid(self) -> int:
        return sum(o.payout for o in self.outcomes)
