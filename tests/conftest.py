"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import random

import pytest

from roundhouse.config import Settings
from roundhouse.core.catalog import get_game
from roundhouse.core.event_bus import EventBus
from roundhouse.core.ledger import InMemoryBalanceAuthority, LedgerClient


class ScriptedAuthority:
    """Balance authority whose answers are scripted per call.

    Each entry of ``script`` is consumed by one ``apply_delta`` call: a bool is
    returned as-is, an exception instance is raised, and ``"hang"`` blocks
    until ``release()``. Once the script is exhausted every call confirms.
    """

    def __init__(self, script: list | None = None) -> None:
        self.script = list(script or [])
        self.calls: list[tuple[str, int, str, str]] = []
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def apply_delta(
        self, account_id: str, amount: int, reason: str, idempotency_key: str
    ) -> bool:
        self.calls.append((account_id, amount, reason, idempotency_key))
        step = self.script.pop(0) if self.script else True
        if step == "hang":
            await self._gate.wait()
            return True
        if isinstance(step, Exception):
            raise step
        return step

    @property
    def credits(self) -> list[tuple[str, int, str, str]]:
        return [call for call in self.calls if call[1] > 0]

    @property
    def debits(self) -> list[tuple[str, int, str, str]]:
        return [call for call in self.calls if call[1] < 0]


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults and no background clock."""
    return Settings(
        roundhouse_env="development",
        roundhouse_auto_tick=False,
        roundhouse_auction_bot_enabled=False,
        roundhouse_credit_retry_delay_seconds=0,
    )


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def authority() -> InMemoryBalanceAuthority:
    return InMemoryBalanceAuthority(starting_balance=1_000)


@pytest.fixture
def ledger(authority: InMemoryBalanceAuthority, event_bus: EventBus) -> LedgerClient:
    return LedgerClient(authority, timeout_seconds=1.0, event_bus=event_bus)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def coin_flip():
    return get_game("coin_flip")


@pytest.fixture
def scripted():
    """Factory for ``ScriptedAuthority`` instances."""
    return ScriptedAuthority
