"""Ledger transaction models.

The engine never owns balances. Each transaction records one request made to
the external balance authority and what came back.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

TransactionStatus = Literal["pending", "committed", "rejected"]


class LedgerTransaction(BaseModel):
    """One debit (delta < 0) or credit (delta > 0) request."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    account_id: str
    delta: int
    reason: str
    idempotency_key: str = ""
    status: TransactionStatus = "pending"
    attempts: int = 0
    error: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_debit(self) -> bool:
        return self.delta < 0

    @property
    def committed(self) -> bool:
        return self.status == "committed"
