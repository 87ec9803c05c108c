"""Lowest-unique-bid auction endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from roundhouse.api.deps import ArcadeDep
from roundhouse.models.auction import AuctionView

router = APIRouter(prefix="/api/auctions", tags=["auctions"])


class BidRequest(BaseModel):
    """Request model for placing a bid."""

    player_id: str = Field(min_length=1)
    value: int


@router.post("/{game_id}/bids", response_model=AuctionView, status_code=201)
async def place_bid(game_id: str, body: BidRequest, arcade: ArcadeDep) -> AuctionView:
    """Charge the entry fee and append the bid. Returns the bidder's view."""
    auction = arcade.auction(game_id)
    await auction.place_bid(body.player_id, body.value)
    return auction.view(body.player_id)


@router.get("/{game_id}", response_model=AuctionView)
async def get_auction(game_id: str, arcade: ArcadeDep, player_id: str = "") -> AuctionView:
    """What ``player_id`` may see: own bids, whether they lead, a hint band."""
    return arcade.auction(game_id).view(player_id)
