"""Built-in game catalog.

Each entry is an immutable ``GameDefinition``. Ladder multiplier tables are
the literal tables the games were tuned with, not recomputed from the
survival odds.
"""

from __future__ import annotations

from decimal import Decimal

from roundhouse.core.errors import UnknownGame
from roundhouse.models.games import (
    AuctionConfig,
    FixedOddsConfig,
    GameDefinition,
    LadderConfig,
)
from roundhouse.models.round import RoundTimings


def _table(*values: str) -> tuple[Decimal, ...]:
    return tuple(Decimal(v) for v in values)


MARKET_ASSETS = ("gold", "oil", "btc", "eth", "usd", "silver", "gas", "aapl", "tsla", "eur")

GREEDY_ITEMS = {
    "tomato": Decimal("5"),
    "cucumber": Decimal("5"),
    "carrot": Decimal("5"),
    "pepper": Decimal("5"),
    "beef": Decimal("15"),
    "chicken": Decimal("8"),
    "bacon": Decimal("9"),
    "fish": Decimal("45"),
}

TREASURE_PRESETS = {
    "easy": LadderConfig(
        step_count=10,
        board_width=4,
        danger_per_step=1,
        multiplier_table=_table(
            "1.23", "1.54", "1.93", "2.41", "3.02", "3.78", "4.73", "5.91", "7.39", "9.24"
        ),
    ),
    "medium": LadderConfig(
        step_count=10,
        board_width=4,
        danger_per_step=2,
        multiplier_table=_table(
            "1.92", "3.84", "7.68", "15.36", "30.72",
            "61.44", "122.88", "245.76", "491.52", "983.04",
        ),
    ),
    "hard": LadderConfig(
        step_count=10,
        board_width=4,
        danger_per_step=3,
        multiplier_table=_table(
            "3.84", "14.75", "56.62", "217.44", "834.96",
            "3206.26", "12312.05", "47278.27", "181548.5", "697146.4",
        ),
    ),
}

# Wheel segments as (multiplier, weight in percent). The original free spin
# always lands on a blank, so its share is folded into "miss".
WHEEL_SEGMENTS = {
    "grand_prize": (Decimal("50"), 0.2),
    "x10": (Decimal("10"), 3.0),
    "x5": (Decimal("5"), 7.0),
    "x2": (Decimal("2"), 15.0),
    "x1.5": (Decimal("1.5"), 20.0),
    "miss": (Decimal("0"), 54.8),
}

# Three reels of seven equally likely symbols (four of them fruit) give 343
# stops. Weights are the stop counts of each paying line.
REEL_LINES = {
    "sevens": (Decimal("100"), 1),
    "diamonds": (Decimal("25"), 1),
    "bells": (Decimal("10"), 1),
    "fruit_triple": (Decimal("5"), 4),
    "fruit_mix": (Decimal("2"), 60),
    "miss": (Decimal("0"), 276),
}

SPACE_FACTIONS = ("mars", "earth", "saturn")

# Four by four grid, six tiles destroyed per round.
SAFE_ZONE_TILES = 16
SAFE_ZONE_DESTROYED = 6


# Ten lanes per step; 3/5/7/9 hazards match a 30/50/70/90 % collision chance.
ROAD_PRESETS = {
    "easy": LadderConfig(
        step_count=5,
        board_width=10,
        danger_per_step=3,
        multiplier_table=_table("1.20", "1.40", "1.60", "1.80", "2.00"),
    ),
    "medium": LadderConfig(
        step_count=5,
        board_width=10,
        danger_per_step=5,
        multiplier_table=_table("1.40", "1.80", "2.20", "2.60", "3.00"),
    ),
    "hard": LadderConfig(
        step_count=5,
        board_width=10,
        danger_per_step=7,
        multiplier_table=_table("2.00", "3.50", "5.50", "7.50", "10.00"),
    ),
    "hardcore": LadderConfig(
        step_count=5,
        board_width=10,
        danger_per_step=9,
        multiplier_table=_table("5.00", "10.00", "20.00", "40.00", "70.00"),
    ),
}


CATALOG: tuple[GameDefinition, ...] = (
    GameDefinition(
        id="coin_flip",
        name="Coin Flip",
        kind="fixed_odds",
        fixed_odds=FixedOddsConfig(options=("king", "writing"), payout_multiplier=Decimal("2")),
    ),
    GameDefinition(
        id="guess_color",
        name="Guess the Color",
        kind="fixed_odds",
        timings=RoundTimings(preparation_time=10, game_time=2, results_time=4),
        fixed_odds=FixedOddsConfig(
            options=("red", "green", "blue", "yellow"), payout_multiplier=Decimal("4")
        ),
    ),
    GameDefinition(
        id="dice_roll",
        name="Dice Roll",
        kind="fixed_odds",
        fixed_odds=FixedOddsConfig(
            options=tuple(str(face) for face in range(1, 7)), payout_multiplier=Decimal("5")
        ),
    ),
    GameDefinition(
        id="number_guess",
        name="Number Guess",
        kind="fixed_odds",
        timings=RoundTimings(preparation_time=10, game_time=3, results_time=4),
        fixed_odds=FixedOddsConfig(
            options=tuple(str(n) for n in range(1, 11)),
            payout_multiplier=Decimal("9"),
            keyed_by_selection=True,
            max_wagers_per_player=5,
        ),
    ),
    GameDefinition(
        id="find_the_box",
        name="Find the Box",
        kind="fixed_odds",
        timings=RoundTimings(preparation_time=10, game_time=3, results_time=4),
        fixed_odds=FixedOddsConfig(options=("1", "2", "3"), payout_multiplier=Decimal("3")),
    ),
    GameDefinition(
        id="dragon_king",
        name="Dragon King",
        kind="fixed_odds",
        timings=RoundTimings(preparation_time=10, game_time=10, results_time=5),
        fixed_odds=FixedOddsConfig(
            options=("1", "2", "3", "4"), payout_multiplier=Decimal("3.5")
        ),
    ),
    GameDefinition(
        id="greedy",
        name="Greedy",
        kind="fixed_odds",
        timings=RoundTimings(preparation_time=15, game_time=5, results_time=5),
        fixed_odds=FixedOddsConfig(
            options=tuple(GREEDY_ITEMS),
            payout_multiplier=Decimal("5"),
            option_multipliers=GREEDY_ITEMS,
            keyed_by_selection=True,
            max_wagers_per_player=6,
        ),
    ),
    GameDefinition(
        id="color_war",
        name="Color War",
        kind="fixed_odds",
        category="club",
        fixed_odds=FixedOddsConfig(options=("red", "blue"), payout_multiplier=Decimal("1.9")),
    ),
    GameDefinition(
        id="camel_race",
        name="Camel Race",
        kind="fixed_odds",
        category="club",
        fixed_odds=FixedOddsConfig(
            options=("1", "2", "3", "4", "5"), payout_multiplier=Decimal("4")
        ),
    ),
    GameDefinition(
        id="cyber_hack",
        name="Cyber Hack",
        kind="fixed_odds",
        category="club",
        fixed_odds=FixedOddsConfig(
            mode="independent",
            options=("bank", "cloud", "gov"),
            payout_multiplier=Decimal("2.8"),
            win_probability=0.33,
        ),
    ),
    GameDefinition(
        id="stock_market",
        name="Stock Market",
        kind="fixed_odds",
        category="club",
        fixed_odds=FixedOddsConfig(
            mode="independent",
            options=("up", "down"),
            payout_multiplier=Decimal("1.95"),
            win_probability=0.5,
            assets=MARKET_ASSETS,
            max_wagers_per_player=len(MARKET_ASSETS),
        ),
    ),
    GameDefinition(
        id="lucky_wheel",
        name="Lucky Wheel",
        kind="fixed_odds",
        timings=RoundTimings(preparation_time=10, game_time=5, results_time=4),
        fixed_odds=FixedOddsConfig(
            mode="spin",
            options=tuple(WHEEL_SEGMENTS),
            option_multipliers={k: m for k, (m, _) in WHEEL_SEGMENTS.items()},
            option_weights={k: w for k, (_, w) in WHEEL_SEGMENTS.items()},
        ),
    ),
    GameDefinition(
        id="slot_machine",
        name="Slot Machine",
        kind="fixed_odds",
        timings=RoundTimings(preparation_time=10, game_time=2, results_time=4),
        fixed_odds=FixedOddsConfig(
            mode="spin",
            options=tuple(REEL_LINES),
            option_multipliers={k: m for k, (m, _) in REEL_LINES.items()},
            option_weights={k: float(w) for k, (_, w) in REEL_LINES.items()},
        ),
    ),
    GameDefinition(
        id="space_war",
        name="Space War",
        kind="fixed_odds",
        category="club",
        fixed_odds=FixedOddsConfig(options=SPACE_FACTIONS, payout_multiplier=Decimal("3")),
    ),
    GameDefinition(
        id="safe_zone",
        name="Safe Zone",
        kind="fixed_odds",
        category="club",
        timings=RoundTimings(preparation_time=10, game_time=3, results_time=4),
        fixed_odds=FixedOddsConfig(
            mode="independent",
            options=tuple(str(tile) for tile in range(1, SAFE_ZONE_TILES + 1)),
            payout_multiplier=Decimal("1.5"),
            win_probability=(SAFE_ZONE_TILES - SAFE_ZONE_DESTROYED) / SAFE_ZONE_TILES,
        ),
    ),
    GameDefinition(
        id="treasure_hunt",
        name="Treasure Hunt",
        kind="ladder",
        ladder_presets=TREASURE_PRESETS,
    ),
    GameDefinition(
        id="chicken_road",
        name="Chicken Road",
        kind="ladder",
        min_bet=25,
        ladder_presets=ROAD_PRESETS,
    ),
    GameDefinition(
        id="unique_bid",
        name="Unique Bid",
        kind="auction",
        category="club",
        auction=AuctionConfig(entry_fee=50, jackpot=10_000),
    ),
)

GAMES: dict[str, GameDefinition] = {game.id: game for game in CATALOG}

GAME_IDS = list(GAMES)


def get_game(game_id: str) -> GameDefinition:
    """Look up a catalog entry by id."""
    game = GAMES.get(game_id.lower())
    if game is None:
        raise UnknownGame(f"Unknown game: {game_id}. Available: {GAME_IDS}")
    return game


def enabled_games(filter_csv: str = "") -> list[GameDefinition]:
    """Catalog entries named in a comma list, or the whole catalog when empty."""
    wanted = [part.strip().lower() for part in filter_csv.split(",") if part.strip()]
    if not wanted:
        return list(CATALOG)
    return [get_game(game_id) for game_id in wanted]
