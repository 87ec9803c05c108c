"""Payout arithmetic shared by every resolver.

Multipliers are literal decimal tables (1.15, 1.95, 3.84 ...). Multiplying a
binary float loses a unit on values like ``100 * 1.15``, so payouts are
computed in Decimal and floored to whole currency units.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal


def compute_payout(stake: int, multiplier: Decimal) -> int:
    """``floor(stake * multiplier)`` in exact decimal arithmetic."""
    if stake < 0:
        msg = f"stake must not be negative, got {stake}"
        raise ValueError(msg)
    product = Decimal(stake) * multiplier
    return int(product.to_integral_value(rounding=ROUND_FLOOR))
