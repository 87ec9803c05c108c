"""Ladder endpoints: start a run, reveal cells, cash out."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from roundhouse.api.deps import ArcadeDep
from roundhouse.models.ladder import LadderState

router = APIRouter(prefix="/api/ladders", tags=["ladders"])


class StartRunRequest(BaseModel):
    """Request model for starting a ladder run."""

    player_id: str = Field(min_length=1)
    stake: int
    preset: str = "easy"


class RevealRequest(BaseModel):
    column: int


@router.post("/{game_id}/runs", response_model=LadderState, status_code=201)
async def start_run(game_id: str, body: StartRunRequest, arcade: ArcadeDep) -> LadderState:
    """Debit the stake and open a new run on a fresh board."""
    ladder = arcade.ladder(game_id)
    return await ladder.start(body.player_id, body.stake, body.preset)


@router.post("/runs/{run_id}/reveal", response_model=LadderState)
async def reveal(run_id: str, body: RevealRequest, arcade: ArcadeDep) -> LadderState:
    ladder = arcade.ladder_for_run(run_id)
    return await ladder.reveal(run_id, body.column)


@router.post("/runs/{run_id}/cashout", response_model=LadderState)
async def cash_out(run_id: str, arcade: ArcadeDep) -> LadderState:
    ladder = arcade.ladder_for_run(run_id)
    return await ladder.cash_out(run_id)


@router.get("/runs/{run_id}", response_model=LadderState)
async def get_run(run_id: str, arcade: ArcadeDep) -> LadderState:
    """Run state. The danger map is only included once the run is over."""
    return arcade.ladder_for_run(run_id).get(run_id)
