"""Round lifecycle models.

A round is one cycle of preparing → running → results.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Phase = Literal["preparing", "running", "results"]

PHASE_ORDER: tuple[Phase, ...] = ("preparing", "running", "results")


class RoundTimings(BaseModel):
    """Per-game phase durations in whole seconds. Immutable after construction."""

    model_config = ConfigDict(frozen=True)

    preparation_time: int = Field(default=10, ge=0)
    game_time: int = Field(default=10, ge=0)
    results_time: int = Field(default=4, ge=0)

    def duration(self, phase: Phase) -> int:
        if phase == "preparing":
            return self.preparation_time
        if phase == "running":
            return self.game_time
        return self.results_time


class RoundSnapshot(BaseModel):
    """Read-only view of a scheduler at one instant."""

    round_id: int
    phase: Phase
    time_remaining: int
    total_time: int


class PhaseTransition(BaseModel):
    """A single phase change emitted by ``RoundScheduler.tick``.

    ``round_id`` is the round the transition belongs to. For the
    results → preparing edge that is the round that just ended.
    """

    model_config = ConfigDict(frozen=True)

    round_id: int
    from_phase: Phase
    to_phase: Phase
    duration: int
