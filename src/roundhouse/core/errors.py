"""Wager error taxonomy.

All of these are per-wager. None of them stops a scheduler or the process.
"""

from __future__ import annotations


class WagerError(Exception):
    """Base class for everything a single wager can fail with."""


class InvalidSelection(WagerError):
    """Rejected locally before any ledger call: wrong phase, bad amount, bad pick."""


class InsufficientFunds(WagerError):
    """The balance authority declined the debit. Nothing was created."""


class LedgerTimeout(WagerError):
    """The balance authority did not confirm in time."""


class PayoutLost(WagerError):
    """A credit failed after every retry. A correctness violation, not a user error."""

    def __init__(self, idempotency_key: str, attempts: int) -> None:
        super().__init__(f"credit {idempotency_key} failed after {attempts} attempts")
        self.idempotency_key = idempotency_key
        self.attempts = attempts


class UnknownGame(LookupError):
    """No game, ladder run or auction with the requested id."""
