"""Game definitions: the immutable per-instance configuration of every game.

A game is one of three kinds:

- ``fixed_odds``: timed rounds, one draw per round (or per wager) decides.
- ``ladder``: untimed climb-and-cash-out runs over a danger map.
- ``auction``: a continuous lowest-unique-bid auction.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from roundhouse.models.round import RoundTimings

GameKind = Literal["fixed_odds", "ladder", "auction"]
GameCategory = Literal["single", "club"]
OddsMode = Literal["winner_among_n", "independent", "spin"]

SPIN_SELECTION = "spin"


class FixedOddsConfig(BaseModel):
    """Parameters of a fixed-probability single-shot bet.

    In ``spin`` mode the player makes no choice: ``options`` are the outcomes
    a wheel or reel set can land on, each wager draws one by
    ``option_weights``, and the landed option's multiplier is paid (0 loses,
    1 refunds the stake).
    """

    model_config = ConfigDict(frozen=True)

    mode: OddsMode = "winner_among_n"
    options: tuple[str, ...]
    payout_multiplier: Decimal = Field(default=Decimal("2"), ge=1)
    # Per-option odds override (Greedy-style boards where fish pays 45x).
    option_multipliers: dict[str, Decimal] = Field(default_factory=dict)
    # Relative draw weights; options left out weigh 1.
    option_weights: dict[str, float] = Field(default_factory=dict)
    win_probability: float = Field(default=0.5, gt=0, le=1)
    push_probability: float = Field(default=0.0, ge=0, lt=1)
    # Independent assets a player may hold one wager on each (multi-asset market).
    assets: tuple[str, ...] = ()
    # Key wagers by their selection so one player can cover several options.
    keyed_by_selection: bool = False
    max_wagers_per_player: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_shape(self) -> FixedOddsConfig:
        if self.mode in ("winner_among_n", "spin") and len(self.options) < 2:
            msg = f"{self.mode} needs at least two options"
            raise ValueError(msg)
        if not self.options:
            msg = "options must not be empty"
            raise ValueError(msg)
        if len(set(self.options)) != len(self.options):
            msg = "options must be distinct"
            raise ValueError(msg)
        for name, table in (
            ("option_multipliers", self.option_multipliers),
            ("option_weights", self.option_weights),
        ):
            unknown = set(table) - set(self.options)
            if unknown:
                msg = f"{name} has unknown options: {sorted(unknown)}"
                raise ValueError(msg)
        floor = 0 if self.mode == "spin" else 1
        if any(m < floor for m in self.option_multipliers.values()):
            msg = f"option multipliers must be >= {floor}"
            raise ValueError(msg)
        if any(w < 0 for w in self.option_weights.values()):
            msg = "option weights must not be negative"
            raise ValueError(msg)
        if sum(self.weights) <= 0:
            msg = "option weights must not all be zero"
            raise ValueError(msg)
        if self.win_probability + self.push_probability > 1:
            msg = "win_probability + push_probability must not exceed 1"
            raise ValueError(msg)
        if self.assets and self.keyed_by_selection:
            msg = "assets and keyed_by_selection are mutually exclusive"
            raise ValueError(msg)
        if self.mode == "spin" and (self.assets or self.keyed_by_selection):
            msg = "spin games take a single wager per player"
            raise ValueError(msg)
        return self

    @property
    def choice_space(self) -> int:
        return len(self.options)

    @property
    def selections(self) -> tuple[str, ...]:
        """What a player may pick when placing a wager."""
        if self.mode == "spin":
            return (SPIN_SELECTION,)
        return self.options

    @property
    def weights(self) -> list[float]:
        """Draw weight of every option, in ``options`` order."""
        return [self.option_weights.get(option, 1.0) for option in self.options]

    def multiplier_for(self, option: str) -> Decimal:
        if self.mode == "spin":
            return self.option_multipliers.get(option, Decimal("0"))
        return self.option_multipliers.get(option, self.payout_multiplier)


class LadderConfig(BaseModel):
    """A progressive ladder: N rows of W cells, D of them dangerous per row."""

    model_config = ConfigDict(frozen=True)

    step_count: int = Field(ge=1)
    board_width: int = Field(ge=2)
    danger_per_step: int = Field(ge=1)
    multiplier_table: tuple[Decimal, ...]

    @model_validator(mode="after")
    def _check_table(self) -> LadderConfig:
        if self.danger_per_step >= self.board_width:
            msg = "danger_per_step must leave at least one safe cell per row"
            raise ValueError(msg)
        if len(self.multiplier_table) != self.step_count:
            msg = (
                f"multiplier_table has {len(self.multiplier_table)} entries, "
                f"expected {self.step_count}"
            )
            raise ValueError(msg)
        previous = Decimal("0")
        for value in self.multiplier_table:
            if value <= previous:
                msg = "multiplier_table must be strictly increasing"
                raise ValueError(msg)
            previous = value
        return self

    @property
    def survival_per_step(self) -> float:
        return (self.board_width - self.danger_per_step) / self.board_width


class AuctionConfig(BaseModel):
    """Lowest-unique-bid auction parameters."""

    model_config = ConfigDict(frozen=True)

    entry_fee: int = Field(default=50, ge=1)
    jackpot: int = Field(default=10_000, ge=0)
    bot_interval_seconds: float = Field(default=5.0, gt=0)
    bot_min_value: int = Field(default=1, ge=1)
    bot_max_value: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def _check_range(self) -> AuctionConfig:
        if self.bot_max_value < self.bot_min_value:
            msg = "bot_max_value must be >= bot_min_value"
            raise ValueError(msg)
        return self


class GameDefinition(BaseModel):
    """Catalog entry for one game instance."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: GameKind
    category: GameCategory = "single"
    min_bet: int = Field(default=1, ge=1)
    timings: RoundTimings = Field(default_factory=RoundTimings)
    fixed_odds: FixedOddsConfig | None = None
    ladder_presets: dict[str, LadderConfig] = Field(default_factory=dict)
    auction: AuctionConfig | None = None

    @model_validator(mode="after")
    def _check_kind(self) -> GameDefinition:
        if self.kind == "fixed_odds" and self.fixed_odds is None:
            msg = f"game {self.id!r}: fixed_odds kind needs a fixed_odds config"
            raise ValueError(msg)
        if self.kind == "ladder" and not self.ladder_presets:
            msg = f"game {self.id!r}: ladder kind needs at least one preset"
            raise ValueError(msg)
        if self.kind == "auction" and self.auction is None:
            msg = f"game {self.id!r}: auction kind needs an auction config"
            raise ValueError(msg)
        return self
