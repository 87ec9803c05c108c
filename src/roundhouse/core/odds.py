"""Fixed-odds outcome resolution.

Three shapes cover most of the catalog:

- **winner_among_n**: one winning option is drawn per round; a wager wins
  iff its selection is that option (box pick, coin flip, colour guess,
  number board, faction battle).
- **independent**: every wager gets its own Bernoulli draw with
  ``win_probability`` (hack target, zone pick, up/down market per asset).
  An optional ``push_probability`` band refunds the stake.
- **spin**: every wager lands on its own option and is paid that option's
  multiplier (prize wheel, slot reels).

Draws are uniform unless ``option_weights`` says otherwise. Resolvers hold
their own unseeded ``random.Random``; outcomes are not meant to be
replayable. Tests inject a seeded instance.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from roundhouse.core.payout import compute_payout
from roundhouse.models.games import FixedOddsConfig
from roundhouse.models.wager import OutcomeKind, Wager


@dataclass(frozen=True)
class Resolution:
    """What a resolver decided for one wager."""

    result: OutcomeKind
    multiplier: Decimal
    payout: int
    detail: dict[str, Any] = field(default_factory=dict)


class OutcomeResolver(Protocol):
    """Strategy interface used by ``GameSession``."""

    @property
    def draws_per_round(self) -> bool: ...

    def draw_winner(self) -> str: ...

    def resolve(self, wager: Wager, winner: str | None = None) -> Resolution: ...


class FixedOddsResolver:
    """Resolves single-shot bets for one game instance."""

    def __init__(self, config: FixedOddsConfig, rng: random.Random | None = None) -> None:
        self.config = config
        self._rng = rng or random.Random()
        self._weights = config.weights
        self._uniform = len(set(self._weights)) == 1
        self.resolutions = 0

    @property
    def draws_per_round(self) -> bool:
        """True when every wager in a round is judged against one shared draw."""
        return self.config.mode == "winner_among_n"

    def draw_winner(self) -> str:
        """Pick one option, weighted by ``option_weights``."""
        if self._uniform:
            return self._rng.choice(self.config.options)
        return self._rng.choices(self.config.options, weights=self._weights)[0]

    def resolve(self, wager: Wager, winner: str | None = None) -> Resolution:
        self.resolutions += 1
        if self.config.mode == "winner_among_n":
            return self._resolve_against(wager, winner)
        if self.config.mode == "spin":
            return self._resolve_spin(wager)
        return self._resolve_independent(wager)

    def _resolve_against(self, wager: Wager, winner: str | None) -> Resolution:
        if winner is None:
            msg = "winner_among_n resolution needs the round's winning option"
            raise ValueError(msg)
        if wager.selection != winner:
            return Resolution("loss", Decimal("0"), 0, {"winner": winner})
        multiplier = self.config.multiplier_for(winner)
        return Resolution(
            "win",
            multiplier,
            compute_payout(wager.amount, multiplier),
            {"winner": winner},
        )

    def _resolve_spin(self, wager: Wager) -> Resolution:
        landed = self.draw_winner()
        multiplier = self.config.multiplier_for(landed)
        detail = {"landed": landed}
        if multiplier == 0:
            return Resolution("loss", Decimal("0"), 0, detail)
        if multiplier == 1:
            return Resolution("push", multiplier, wager.amount, detail)
        return Resolution("win", multiplier, compute_payout(wager.amount, multiplier), detail)

    def _resolve_independent(self, wager: Wager) -> Resolution:
        roll = self._rng.random()
        detail = {"roll": round(roll, 6)}
        if roll < self.config.win_probability:
            multiplier = self.config.multiplier_for(wager.selection)
            return Resolution("win", multiplier, compute_payout(wager.amount, multiplier), detail)
        if roll < self.config.win_probability + self.config.push_probability:
            return Resolution("push", Decimal("1"), wager.amount, detail)
        return Resolution("loss", Decimal("0"), 0, detail)
