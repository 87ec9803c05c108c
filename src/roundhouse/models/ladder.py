"""Ladder run views returned to callers.

The mutable run lives in ``roundhouse.core.ladder``; these are snapshots.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

LadderStatus = Literal["playing", "won", "lost"]


class LadderState(BaseModel):
    """Snapshot of one climb-and-cash-out attempt."""

    run_id: str
    game_id: str
    player_id: str
    preset: str
    stake: int
    current_step: int = Field(ge=0)
    step_count: int
    board_width: int
    danger_per_step: int
    multiplier_table: list[Decimal]
    status: LadderStatus = "playing"
    payout: int = 0
    # Revealed cells only: row -> column picked and whether it was safe.
    revealed: list[tuple[int, int, bool]] = Field(default_factory=list)
    # Full danger map, only populated once the run has terminated.
    danger_map: list[list[bool]] | None = None

    @property
    def current_multiplier(self) -> Decimal:
        if self.current_step == 0:
            return Decimal("1")
        return self.multiplier_table[self.current_step - 1]

    @property
    def can_cash_out(self) -> bool:
        return self.status == "playing" and self.current_step >= 1
