"""Lowest-unique-bid auction models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

BOT_BIDDER_ID = "house-bot"


class BidEntry(BaseModel):
    """One immutable line of the auction log."""

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(ge=0)
    value: int = Field(gt=0)
    bidder_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_bot(self) -> bool:
        return self.bidder_id == BOT_BIDDER_ID

    def is_own_bid(self, viewer_id: str) -> bool:
        return self.bidder_id == viewer_id


class AuctionView(BaseModel):
    """What a single player may see of the auction."""

    game_id: str
    entry_fee: int
    jackpot: int
    total_bids: int
    own_bids: list[int] = Field(default_factory=list)
    leading: bool = False
    status_hint: str = ""
