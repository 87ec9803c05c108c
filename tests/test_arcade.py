"""Tests for the arcade registry and settings wiring."""

import pytest

from roundhouse.core.arcade import Arcade, build_authority
from roundhouse.core.catalog import enabled_games
from roundhouse.core.clock import IntervalClock, ManualClock
from roundhouse.core.errors import UnknownGame
from roundhouse.core.ledger import HttpBalanceAuthority, InMemoryBalanceAuthority


class TestBuildAuthority:
    def test_memory_by_default(self, settings):
        authority = build_authority(settings)
        assert isinstance(authority, InMemoryBalanceAuthority)
        assert authority.balance("anyone") == settings.roundhouse_starting_balance

    async def test_http_when_url_set(self, settings):
        settings.roundhouse_ledger_url = "http://ledger.test"
        authority = build_authority(settings)
        assert isinstance(authority, HttpBalanceAuthority)
        await authority.aclose()


class TestArcade:
    @pytest.fixture
    def arcade(self, ledger, event_bus):
        return Arcade(enabled_games(), ledger, ManualClock(), event_bus=event_bus)

    def test_instances_by_kind(self, arcade):
        assert "coin_flip" in arcade.sessions
        assert "treasure_hunt" in arcade.ladders
        assert "unique_bid" in arcade.auctions
        assert arcade.clock.handler_count == len(arcade.sessions)

    async def test_clock_drives_every_session(self, arcade):
        await arcade.clock.advance(10)
        assert arcade.session("coin_flip").phase == "running"
        assert arcade.session("guess_color").phase == "running"

    def test_lookups_raise_unknown_game(self, arcade):
        with pytest.raises(UnknownGame):
            arcade.session("treasure_hunt")
        with pytest.raises(UnknownGame):
            arcade.ladder("coin_flip")
        with pytest.raises(UnknownGame):
            arcade.auction("nope")
        with pytest.raises(UnknownGame):
            arcade.ladder_for_run("missing")

    async def test_ladder_for_run(self, arcade):
        state = await arcade.ladder("treasure_hunt").start("p1", 100, "easy")
        assert arcade.ladder_for_run(state.run_id).game_id == "treasure_hunt"

    async def test_start_and_stop_bidders(self, arcade):
        arcade.start(auto_tick=False, auction_bot=True)
        assert arcade.auction("unique_bid").bidder_running
        await arcade.stop()
        assert not arcade.auction("unique_bid").bidder_running


class TestFromSettings:
    async def test_builds_interval_clock(self, settings):
        settings.roundhouse_enabled_games = "coin_flip,unique_bid"
        arcade = Arcade.from_settings(settings)
        assert isinstance(arcade.clock, IntervalClock)
        assert set(arcade.definitions) == {"coin_flip", "unique_bid"}
        assert arcade.ledger.credit_retries == settings.roundhouse_credit_retries
        arcade.start(auto_tick=True, auction_bot=False)
        assert arcade.clock.running
        await arcade.stop()
        assert not arcade.clock.running
