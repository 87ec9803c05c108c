"""Tests for the ledger client and balance authorities."""

import asyncio
import json

import httpx
import pytest

from roundhouse.core.errors import InsufficientFunds, LedgerTimeout, PayoutLost
from roundhouse.core.event_bus import EventBus
from roundhouse.core.ledger import HttpBalanceAuthority, InMemoryBalanceAuthority, LedgerClient
from roundhouse.models.ledger import LedgerTransaction


class TestInMemoryAuthority:
    async def test_rejects_overdraft(self):
        authority = InMemoryBalanceAuthority(starting_balance=100)
        assert await authority.apply_delta("p1", -150, "stake", "k1") is False
        assert authority.balance("p1") == 100

    async def test_replayed_key_applies_once(self):
        authority = InMemoryBalanceAuthority(starting_balance=100)
        assert await authority.apply_delta("p1", 50, "win", "k1")
        assert await authority.apply_delta("p1", 50, "win", "k1")
        assert authority.balance("p1") == 150

    async def test_explicit_balances(self):
        authority = InMemoryBalanceAuthority(balances={"rich": 5_000})
        assert authority.balance("rich") == 5_000
        assert authority.balance("poor") == 0

    async def test_key_memory_and_call_log_are_bounded(self):
        authority = InMemoryBalanceAuthority(starting_balance=0, max_keys=2, call_log_size=3)
        for n in range(4):
            await authority.apply_delta("p1", 1, "win", f"k{n}")
        assert len(authority.calls) == 3
        assert authority.calls[0][3] == "k1"
        # k0 was forgotten, so replaying it applies again.
        await authority.apply_delta("p1", 1, "win", "k0")
        assert authority.balance("p1") == 5


class TestLedgerClientConstruction:
    def test_credit_retries_must_be_positive(self):
        with pytest.raises(ValueError, match="credit_retries"):
            LedgerClient(InMemoryBalanceAuthority(), credit_retries=0)


class TestApplyDelta:
    async def test_confirmed(self, ledger, authority):
        assert await ledger.apply_delta("p1", -100, "stake", "k1") is True
        assert authority.balance("p1") == 900

    async def test_declined(self, ledger):
        assert await ledger.apply_delta("p1", -5_000, "stake", "k1") is False
        assert ledger.journal[0].error == "declined"

    async def test_timeout_is_failure(self, scripted):
        authority = scripted(["hang"])
        ledger = LedgerClient(authority, timeout_seconds=0.05)
        assert await ledger.apply_delta("p1", -10, "stake", "k1") is False
        assert ledger.journal[0].error == "timeout"
        authority.release()

    async def test_transport_error_is_failure(self, scripted):
        ledger = LedgerClient(scripted([httpx.ConnectError("down")]))
        assert await ledger.apply_delta("p1", -10, "stake", "k1") is False
        assert ledger.journal[0].error == "unavailable"


class TestDebit:
    async def test_commit_records_transaction(self, ledger):
        txn = await ledger.debit("p1", 100, "coin_flip:stake", "k1")
        assert txn.committed
        assert txn.is_debit
        assert txn.delta == -100

    async def test_declined_raises_insufficient_funds(self, ledger):
        with pytest.raises(InsufficientFunds):
            await ledger.debit("p1", 10_000, "stake", "k1")

    async def test_unconfirmed_raises_timeout(self, scripted):
        authority = scripted(["hang"])
        ledger = LedgerClient(authority, timeout_seconds=0.05)
        with pytest.raises(LedgerTimeout):
            await ledger.debit("p1", 10, "stake", "k1")
        authority.release()
        await ledger.drain()

    async def test_debit_is_never_retried(self, scripted):
        authority = scripted([False])
        ledger = LedgerClient(authority, credit_retries=3)
        with pytest.raises(InsufficientFunds):
            await ledger.debit("p1", 10, "stake", "k1")
        assert len(authority.calls) == 1

    async def test_non_positive_stake(self, ledger):
        with pytest.raises(ValueError):
            await ledger.debit("p1", 0, "stake", "k1")


class TestDebitReconciliation:
    async def test_unconfirmed_debit_is_replayed_then_refunded(self, scripted):
        authority = scripted([httpx.ReadTimeout("slow")])
        ledger = LedgerClient(authority)
        with pytest.raises(LedgerTimeout):
            await ledger.debit("p1", 10, "flip:stake", "k1")
        await ledger.drain()
        assert [(c[1], c[3]) for c in authority.calls] == [
            (-10, "k1"),
            (-10, "k1"),
            (10, "k1:void"),
        ]
        assert ledger.committed_credit("k1:void") is not None
        assert ledger.pending_reconciliations == 0

    async def test_declined_replay_means_nothing_was_taken(self, scripted):
        authority = scripted([httpx.ConnectError("down"), False])
        ledger = LedgerClient(authority)
        with pytest.raises(LedgerTimeout):
            await ledger.debit("p1", 10, "flip:stake", "k1")
        await ledger.drain()
        assert authority.credits == []
        assert len(authority.debits) == 2

    async def test_debit_that_landed_is_refunded_once(self):
        authority = InMemoryBalanceAuthority(starting_balance=100)
        await authority.apply_delta("p1", -10, "flip:stake", "k1")
        ledger = LedgerClient(authority)
        await ledger._reconcile_debit(
            LedgerTransaction(
                account_id="p1", delta=-10, reason="flip:stake", idempotency_key="k1"
            )
        )
        assert authority.balance("p1") == 100

    async def test_unreachable_authority_gives_up_after_retries(self, scripted):
        down = httpx.ConnectError("down")
        authority = scripted([down, down, down])
        ledger = LedgerClient(authority, credit_retries=1)
        with pytest.raises(LedgerTimeout):
            await ledger.debit("p1", 10, "flip:stake", "k1")
        await ledger.drain()
        assert len(authority.calls) == 3
        assert authority.credits == []

    async def test_declined_debit_is_not_reconciled(self, scripted):
        authority = scripted([False])
        ledger = LedgerClient(authority)
        with pytest.raises(InsufficientFunds):
            await ledger.debit("p1", 10, "flip:stake", "k1")
        assert ledger.pending_reconciliations == 0


class TestCredit:
    async def test_same_key_credits_once(self, ledger, authority):
        first = await ledger.credit("p1", 200, "win", "round-1:p1:payout")
        second = await ledger.credit("p1", 200, "win", "round-1:p1:payout")
        assert first.id == second.id
        assert authority.balance("p1") == 1_200
        assert len(authority.calls) == 1

    async def test_concurrent_same_key_share_one_attempt(self, scripted):
        authority = scripted(["hang"])
        ledger = LedgerClient(authority)
        pending = [
            asyncio.ensure_future(ledger.credit("p1", 50, "win", "k")) for _ in range(3)
        ]
        await asyncio.sleep(0)
        authority.release()
        results = await asyncio.gather(*pending)
        assert len({txn.id for txn in results}) == 1
        assert len(authority.calls) == 1

    async def test_retry_then_commit(self, scripted):
        authority = scripted([httpx.ReadTimeout("slow")])
        ledger = LedgerClient(authority, credit_retries=1)
        txn = await ledger.credit("p1", 50, "win", "k")
        assert txn.committed
        assert txn.attempts == 2
        assert ledger.committed_credit("k") is txn

    async def test_exhausted_retries_raise_payout_lost(self, scripted):
        bus = EventBus()
        authority = scripted([False, False, False])
        ledger = LedgerClient(authority, credit_retries=2, event_bus=bus)
        async with bus.subscribe("payout.lost") as sub:
            with pytest.raises(PayoutLost) as excinfo:
                await ledger.credit("p1", 50, "win", "k")
            event = await sub.get(timeout=1.0)
        assert excinfo.value.attempts == 3
        assert excinfo.value.idempotency_key == "k"
        assert event["data"]["amount"] == 50
        assert ledger.committed_credit("k") is None

    async def test_lost_payout_can_be_retried_later(self, scripted):
        authority = scripted([False, False])
        ledger = LedgerClient(authority, credit_retries=1)
        with pytest.raises(PayoutLost):
            await ledger.credit("p1", 50, "win", "k")
        txn = await ledger.credit("p1", 50, "win", "k")
        assert txn.committed

    async def test_journal_and_credit_memory_are_bounded(self, authority):
        ledger = LedgerClient(authority, journal_size=2, credit_memory=2)
        for n in range(3):
            await ledger.credit("p1", 10, "win", f"round-{n}:payout")
        assert [t.idempotency_key for t in ledger.journal] == ["round-1:payout", "round-2:payout"]
        assert ledger.committed_credit("round-0:payout") is None
        assert ledger.committed_credit("round-2:payout") is not None


class TestHttpAuthority:
    @staticmethod
    def _client(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://ledger.test"
        )

    async def test_posts_transaction_with_idempotency_header(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"ok": True})

        authority = HttpBalanceAuthority(
            "http://ledger.test", token="secret", client=self._client(handler)
        )
        assert await authority.apply_delta("p1", -50, "coin_flip:stake", "k1") is True
        await authority.aclose()

        request = seen[0]
        assert request.url.path == "/transactions"
        assert request.headers["Idempotency-Key"] == "k1"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {
            "account_id": "p1",
            "amount": -50,
            "reason": "coin_flip:stake",
            "idempotency_key": "k1",
        }

    async def test_payment_required_is_a_decline(self):
        authority = HttpBalanceAuthority(
            "http://ledger.test", client=self._client(lambda r: httpx.Response(402))
        )
        assert await authority.apply_delta("p1", -50, "stake", "k1") is False

    async def test_server_error_surfaces_as_unavailable(self):
        authority = HttpBalanceAuthority(
            "http://ledger.test", client=self._client(lambda r: httpx.Response(503))
        )
        ledger = LedgerClient(authority)
        with pytest.raises(LedgerTimeout):
            await ledger.debit("p1", 50, "stake", "k1")
        await ledger.drain()
        assert ledger.journal[0].error == "unavailable"
        await authority.aclose()
