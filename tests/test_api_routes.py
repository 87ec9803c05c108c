"""HTTP tests for the game, ladder and auction routes."""

from __future__ import annotations

import random

import pytest
from httpx import ASGITransport, AsyncClient

from roundhouse.core.arcade import Arcade
from roundhouse.core.catalog import enabled_games
from roundhouse.core.clock import ManualClock
from roundhouse.core.ledger import LedgerClient
from roundhouse.main import create_app


@pytest.fixture
def arcade(ledger, event_bus) -> Arcade:
    return Arcade(
        enabled_games(), ledger, ManualClock(), event_bus=event_bus, rng=random.Random(3)
    )


@pytest.fixture
async def client(settings, arcade):
    """Async HTTP client bound to a test app on a manual clock."""
    app = create_app(settings, arcade=arcade)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


def _safe_column(arcade: Arcade, run_id: str, row: int) -> int:
    board = arcade.ladder_for_run(run_id)._runs[run_id]._danger_map
    return board[row].index(False)


class TestHealth:
    async def test_health(self, client) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["games"] == len(enabled_games())


class TestGames:
    async def test_list(self, client) -> None:
        resp = await client.get("/api/games")
        assert resp.status_code == 200
        ids = {g["id"] for g in resp.json()}
        assert {"coin_flip", "treasure_hunt", "unique_bid"} <= ids

    async def test_status_of_timed_game(self, client) -> None:
        resp = await client.get("/api/games/coin_flip")
        assert resp.status_code == 200
        body = resp.json()
        assert body["round"]["phase"] == "preparing"
        assert body["round"]["time_remaining"] == 10
        assert body["options"] == ["king", "writing"]

    async def test_status_of_untimed_game(self, client) -> None:
        body = (await client.get("/api/games/treasure_hunt")).json()
        assert body["kind"] == "ladder"
        assert body["round"] is None

    async def test_unknown_game_404(self, client) -> None:
        resp = await client.get("/api/games/roulette")
        assert resp.status_code == 404
        assert resp.json()["error"] == "UnknownGame"


class TestWagers:
    async def test_place_and_cancel(self, client, arcade) -> None:
        resp = await client.post(
            "/api/games/coin_flip/wagers",
            json={"player_id": "p1", "selection": "king", "amount": 100},
        )
        assert resp.status_code == 201
        assert resp.json()["round_id"] == 1
        assert len(arcade.session("coin_flip").wagers()) == 1

        resp = await client.delete("/api/games/coin_flip/wagers", params={"player_id": "p1"})
        assert resp.status_code == 200
        assert arcade.session("coin_flip").wagers() == []

    async def test_cancel_by_selection_on_number_board(self, client, arcade) -> None:
        for number in ("3", "7"):
            await client.post(
                "/api/games/number_guess/wagers",
                json={"player_id": "p1", "selection": number, "amount": 10},
            )
        resp = await client.delete(
            "/api/games/number_guess/wagers", params={"player_id": "p1", "selection": "7"}
        )
        assert resp.status_code == 200
        assert resp.json()["selection"] == "7"
        assert [w.selection for w in arcade.session("number_guess").wagers()] == ["3"]

    async def test_spin_game_status(self, client) -> None:
        body = (await client.get("/api/games/lucky_wheel")).json()
        assert body["mode"] == "spin"
        assert body["options"] == ["spin"]
        assert body["multipliers"]["grand_prize"] == "50"

    async def test_invalid_selection_422(self, client, authority) -> None:
        resp = await client.post(
            "/api/games/coin_flip/wagers",
            json={"player_id": "p1", "selection": "edge", "amount": 100},
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidSelection"
        assert not authority.calls

    async def test_wager_on_untimed_game_404(self, client) -> None:
        resp = await client.post(
            "/api/games/treasure_hunt/wagers",
            json={"player_id": "p1", "selection": "x", "amount": 100},
        )
        assert resp.status_code == 404

    async def test_history_after_a_round(self, client, arcade) -> None:
        await client.post(
            "/api/games/coin_flip/wagers",
            json={"player_id": "p1", "selection": "king", "amount": 100},
        )
        session = arcade.session("coin_flip")
        await arcade.clock.advance(10)
        await session.drain()
        await arcade.clock.advance(14)

        resp = await client.get("/api/games/coin_flip/history")
        assert resp.status_code == 200
        history = resp.json()
        assert history[0]["round_id"] == 1
        assert len(history[0]["outcomes"]) == 1


class TestLadders:
    async def test_full_run(self, client, arcade, authority) -> None:
        resp = await client.post(
            "/api/ladders/treasure_hunt/runs",
            json={"player_id": "p1", "stake": 100, "preset": "easy"},
        )
        assert resp.status_code == 201
        run = resp.json()
        assert run["danger_map"] is None

        column = _safe_column(arcade, run["run_id"], 0)
        resp = await client.post(
            f"/api/ladders/runs/{run['run_id']}/reveal", json={"column": column}
        )
        assert resp.json()["current_step"] == 1

        resp = await client.post(f"/api/ladders/runs/{run['run_id']}/cashout")
        assert resp.status_code == 200
        assert resp.json()["status"] == "won"
        assert resp.json()["payout"] == 123
        assert authority.balance("p1") == 1_023

        resp = await client.get(f"/api/ladders/runs/{run['run_id']}")
        assert resp.json()["danger_map"] is not None

    async def test_cash_out_before_reveal_422(self, client) -> None:
        run = (
            await client.post(
                "/api/ladders/treasure_hunt/runs",
                json={"player_id": "p1", "stake": 100},
            )
        ).json()
        resp = await client.post(f"/api/ladders/runs/{run['run_id']}/cashout")
        assert resp.status_code == 422

    async def test_insufficient_funds_402(self, client) -> None:
        resp = await client.post(
            "/api/ladders/treasure_hunt/runs",
            json={"player_id": "p1", "stake": 5_000},
        )
        assert resp.status_code == 402

    async def test_unknown_run_404(self, client) -> None:
        resp = await client.get("/api/ladders/runs/missing")
        assert resp.status_code == 404


class TestAuctions:
    async def test_bid_and_view(self, client, authority) -> None:
        resp = await client.post(
            "/api/auctions/unique_bid/bids", json={"player_id": "p1", "value": 7}
        )
        assert resp.status_code == 201
        view = resp.json()
        assert view["own_bids"] == [7]
        assert view["leading"] is True
        assert view["status_hint"] == "between 1 and 10"
        assert authority.balance("p1") == 950

        view = (await client.get("/api/auctions/unique_bid", params={"player_id": "p2"})).json()
        assert view["own_bids"] == []
        assert view["leading"] is False
        assert view["total_bids"] == 1

    async def test_invalid_bid_422(self, client) -> None:
        resp = await client.post(
            "/api/auctions/unique_bid/bids", json={"player_id": "p1", "value": 0}
        )
        assert resp.status_code == 422


class TestLedgerTimeout:
    async def test_unconfirmed_debit_504(self, settings, scripted) -> None:
        authority = scripted(["hang"])
        arcade = Arcade(
            enabled_games("treasure_hunt"),
            LedgerClient(authority, timeout_seconds=0.05),
            ManualClock(),
        )
        app = create_app(settings, arcade=arcade)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.post(
                "/api/ladders/treasure_hunt/runs",
                json={"player_id": "p1", "stake": 100},
            )
        authority.release()
        await arcade.ledger.drain()
        assert resp.status_code == 504
        assert resp.json()["error"] == "LedgerTimeout"
        assert authority.credits[0][3].endswith(":stake:void")
