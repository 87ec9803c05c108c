"""Timed game endpoints: catalog, round state, wagers, history."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from roundhouse.api.deps import ArcadeDep
from roundhouse.models.games import GameCategory, GameKind, OddsMode
from roundhouse.models.round import RoundSnapshot
from roundhouse.models.wager import RoundRecord, Wager

router = APIRouter(prefix="/api/games", tags=["games"])


class GameSummary(BaseModel):
    """One catalog entry as listed to clients."""

    id: str
    name: str
    kind: GameKind
    category: GameCategory
    min_bet: int


class GameStatus(GameSummary):
    """Catalog entry plus live round state for timed games."""

    mode: OddsMode | None = None
    options: list[str] = Field(default_factory=list)
    assets: list[str] = Field(default_factory=list)
    multipliers: dict[str, Decimal] = Field(default_factory=dict)
    round: RoundSnapshot | None = None
    open_wagers: int = 0
    last_winner: str | None = None


class WagerRequest(BaseModel):
    """Request model for placing a wager."""

    player_id: str = Field(min_length=1)
    selection: str
    amount: int
    asset: str = ""


@router.get("", response_model=list[GameSummary])
async def list_games(arcade: ArcadeDep) -> list[GameSummary]:
    return [
        GameSummary(
            id=d.id, name=d.name, kind=d.kind, category=d.category, min_bet=d.min_bet
        )
        for d in arcade.definitions.values()
    ]


@router.get("/{game_id}", response_model=GameStatus)
async def get_game(game_id: str, arcade: ArcadeDep) -> GameStatus:
    """Catalog entry; timed games include the current round snapshot."""
    definition = arcade.definition(game_id)
    status = GameStatus(
        id=definition.id,
        name=definition.name,
        kind=definition.kind,
        category=definition.category,
        min_bet=definition.min_bet,
    )
    session = arcade.sessions.get(game_id)
    if session is not None:
        config = session.config
        status.options = list(config.selections)
        status.assets = list(config.assets)
        status.multipliers = {opt: config.multiplier_for(opt) for opt in config.options}
        status.mode = config.mode
        status.round = session.snapshot()
        status.open_wagers = len(session.wagers())
        status.last_winner = session.last_winner
    return status


@router.post("/{game_id}/wagers", response_model=Wager, status_code=201)
async def place_wager(game_id: str, body: WagerRequest, arcade: ArcadeDep) -> Wager:
    """Queue a wager for the current round. The stake is debited when it starts."""
    session = arcade.session(game_id)
    return session.place_wager(body.player_id, body.selection, body.amount, body.asset)


@router.delete("/{game_id}/wagers", response_model=Wager)
async def cancel_wager(
    game_id: str, player_id: str, arcade: ArcadeDep, asset: str = "", selection: str = ""
) -> Wager:
    """Withdraw a queued wager. Number boards and item boards identify it by ``selection``."""
    session = arcade.session(game_id)
    return session.cancel_wager(player_id, asset=asset, selection=selection)


@router.get("/{game_id}/history", response_model=list[RoundRecord])
async def get_history(game_id: str, arcade: ArcadeDep) -> list[RoundRecord]:
    """Most recent rounds first."""
    return arcade.session(game_id).history()
