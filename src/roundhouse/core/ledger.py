"""Wager ledger protocol.

The balance authority is the only system of record for player currency. The
engine asks it to apply signed deltas and never touches a balance itself.

Rules enforced here:

- Every authority call is bounded by a timeout; no confirmation is a failure.
- A debit must commit before the wager exists. A declined or unconfirmed
  debit raises, so callers cannot proceed as though the stake was taken.
- Credits are idempotent per key: one committed credit per key, concurrent
  callers for the same key share a single in-flight attempt, and a failed
  credit is retried before it is reported as a lost payout.
- A debit that was never confirmed may still have landed. It is replayed
  under its own key in the background and, once it stands, refunded.
- Journal and credit memory are bounded; old entries fall off the end.

Two authorities ship with the engine: ``InMemoryBalanceAuthority`` for
development and tests, and ``HttpBalanceAuthority`` for a remote service.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict, deque
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from roundhouse.core.errors import InsufficientFunds, LedgerTimeout, PayoutLost
from roundhouse.models.ledger import LedgerTransaction

if TYPE_CHECKING:
    from roundhouse.core.event_bus import EventBus

logger = logging.getLogger(__name__)

_HTTP_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

# Statuses a remote authority uses to decline a mutation (as opposed to failing).
_DECLINE_STATUSES = frozenset({402, 409, 422})


class BalanceAuthority(Protocol):
    """External system that atomically applies a signed delta to an account."""

    async def apply_delta(
        self, account_id: str, amount: int, reason: str, idempotency_key: str
    ) -> bool: ...


class InMemoryBalanceAuthority:
    """Process-local authority. Rejects any debit that would go below zero.

    Replaying an idempotency key that already committed returns True without
    applying the delta twice. Only the newest ``max_keys`` keys are remembered
    and only the newest ``call_log_size`` calls are logged.
    """

    def __init__(
        self,
        starting_balance: int = 0,
        balances: dict[str, int] | None = None,
        max_keys: int = 100_000,
        call_log_size: int = 1_000,
    ) -> None:
        self._starting_balance = starting_balance
        self._balances: dict[str, int] = dict(balances or {})
        self._committed_keys: OrderedDict[str, None] = OrderedDict()
        self._max_keys = max_keys
        self._lock = asyncio.Lock()
        self.calls: deque[tuple[str, int, str, str]] = deque(maxlen=call_log_size)

    def balance(self, account_id: str) -> int:
        return self._balances.get(account_id, self._starting_balance)

    def set_balance(self, account_id: str, amount: int) -> None:
        self._balances[account_id] = amount

    async def apply_delta(
        self, account_id: str, amount: int, reason: str, idempotency_key: str
    ) -> bool:
        async with self._lock:
            self.calls.append((account_id, amount, reason, idempotency_key))
            if idempotency_key and idempotency_key in self._committed_keys:
                return True
            current = self.balance(account_id)
            if current + amount < 0:
                return False
            self._balances[account_id] = current + amount
            if idempotency_key:
                self._committed_keys[idempotency_key] = None
                if len(self._committed_keys) > self._max_keys:
                    self._committed_keys.popitem(last=False)
            return True


class HttpBalanceAuthority:
    """Authority reached over HTTP.

    ``POST {base_url}/transactions`` with ``{account_id, amount, reason,
    idempotency_key}``. 2xx confirms, 402/409/422 decline, anything else is
    raised as an ``httpx.HTTPError`` for the ledger client to handle.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=_HTTP_TIMEOUT)

    async def apply_delta(
        self, account_id: str, amount: int, reason: str, idempotency_key: str
    ) -> bool:
        headers = {"Idempotency-Key": idempotency_key}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        resp = await self._client.post(
            "/transactions",
            json={
                "account_id": account_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            },
            headers=headers,
        )
        if resp.status_code in _DECLINE_STATUSES:
            logger.info(
                "authority_declined account=%s amount=%d status=%d",
                account_id,
                amount,
                resp.status_code,
            )
            return False
        resp.raise_for_status()
        return True

    async def aclose(self) -> None:
        await self._client.aclose()


class LedgerClient:
    """Timeout-bounded, journaled access to a balance authority."""

    def __init__(
        self,
        authority: BalanceAuthority,
        timeout_seconds: float = 5.0,
        credit_retries: int = 1,
        retry_delay_seconds: float = 0.0,
        event_bus: EventBus | None = None,
        journal_size: int = 1_000,
        credit_memory: int = 10_000,
    ) -> None:
        if credit_retries < 1:
            msg = "credit_retries must be at least 1"
            raise ValueError(msg)
        self._authority = authority
        self.timeout_seconds = timeout_seconds
        self.credit_retries = credit_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._event_bus = event_bus
        self._journal: deque[LedgerTransaction] = deque(maxlen=journal_size)
        # Keys carry a session epoch and round id, so a key older than the
        # newest ``credit_memory`` credits is never asked for again.
        self._committed_credits: OrderedDict[str, LedgerTransaction] = OrderedDict()
        self._credit_memory = credit_memory
        self._inflight_credits: dict[str, asyncio.Future[LedgerTransaction]] = {}
        self._background: set[asyncio.Task[None]] = set()

    @property
    def authority(self) -> BalanceAuthority:
        return self._authority

    @property
    def journal(self) -> list[LedgerTransaction]:
        return list(self._journal)

    @property
    def pending_reconciliations(self) -> int:
        return len(self._background)

    def committed_credit(self, idempotency_key: str) -> LedgerTransaction | None:
        return self._committed_credits.get(idempotency_key)

    async def drain(self) -> None:
        """Wait for every background reconciliation."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def apply_delta(
        self, account_id: str, amount: int, reason: str, idempotency_key: str = ""
    ) -> bool:
        """Apply one delta. True only if the authority confirmed in time."""
        txn = await self._attempt(account_id, amount, reason, idempotency_key)
        return txn.committed

    async def debit(
        self, account_id: str, stake: int, reason: str, idempotency_key: str
    ) -> LedgerTransaction:
        """Take a stake. Raises unless the authority committed the debit."""
        if stake <= 0:
            msg = f"stake must be positive, got {stake}"
            raise ValueError(msg)
        txn = await self._attempt(account_id, -stake, reason, idempotency_key)
        if txn.committed:
            logger.info(
                "debit_committed key=%s account=%s stake=%d", idempotency_key, account_id, stake
            )
            return txn
        if txn.error in ("timeout", "unavailable"):
            self._spawn(self._reconcile_debit(txn))
            raise LedgerTimeout(f"debit {idempotency_key} not confirmed: {txn.error}")
        raise InsufficientFunds(f"debit {idempotency_key} declined for {account_id}")

    async def _reconcile_debit(self, txn: LedgerTransaction) -> None:
        """Pin down an unconfirmed debit, then hand the stake back.

        Replaying under the same key either hits the authority's record of the
        first attempt or commits it now, so exactly one debit stands and the
        refund under ``<key>:void`` cancels it. A declined replay means the
        first attempt never landed and nothing is owed.
        """
        account_id, stake, reason = txn.account_id, -txn.delta, txn.reason
        key = txn.idempotency_key
        attempts = 1 + self.credit_retries
        for attempt in range(1, attempts + 1):
            txn = await self._attempt(account_id, -stake, reason, key, txn)
            if txn.committed or txn.error == "declined":
                break
            if attempt < attempts and self.retry_delay_seconds > 0:
                await asyncio.sleep(self.retry_delay_seconds)

        if txn.error == "declined":
            logger.info("debit_reconciled key=%s outcome=never_taken", key)
            return
        if not txn.committed:
            logger.error(
                "debit_unreconciled key=%s account=%s stake=%d attempts=%d",
                key,
                account_id,
                stake,
                attempts,
            )
            return
        try:
            await self.credit(account_id, stake, f"{reason}:void", f"{key}:void")
        except PayoutLost:
            return
        logger.info("debit_reconciled key=%s outcome=refunded stake=%d", key, stake)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def credit(
        self, account_id: str, amount: int, reason: str, idempotency_key: str
    ) -> LedgerTransaction:
        """Pay out exactly once per key. Raises PayoutLost when every retry failed."""
        if amount <= 0:
            msg = f"credit amount must be positive, got {amount}"
            raise ValueError(msg)
        existing = self._committed_credits.get(idempotency_key)
        if existing is not None:
            logger.info("credit_duplicate_ignored key=%s", idempotency_key)
            return existing

        inflight = self._inflight_credits.get(idempotency_key)
        if inflight is None:
            inflight = asyncio.ensure_future(
                self._credit_with_retry(account_id, amount, reason, idempotency_key)
            )
            self._inflight_credits[idempotency_key] = inflight
            inflight.add_done_callback(
                lambda _f, key=idempotency_key: self._inflight_credits.pop(key, None)
            )
        # Shielded so a cancelled waiter never abandons a payout halfway.
        return await asyncio.shield(inflight)

    async def _credit_with_retry(
        self, account_id: str, amount: int, reason: str, idempotency_key: str
    ) -> LedgerTransaction:
        attempts = 1 + self.credit_retries
        txn: LedgerTransaction | None = None
        for attempt in range(1, attempts + 1):
            txn = await self._attempt(account_id, amount, reason, idempotency_key, txn)
            if txn.committed:
                self._remember_credit(idempotency_key, txn)
                logger.info(
                    "credit_committed key=%s account=%s amount=%d attempt=%d",
                    idempotency_key,
                    account_id,
                    amount,
                    attempt,
                )
                return txn
            logger.warning(
                "credit_retry key=%s attempt=%d/%d error=%s",
                idempotency_key,
                attempt,
                attempts,
                txn.error,
            )
            if attempt < attempts and self.retry_delay_seconds > 0:
                await asyncio.sleep(self.retry_delay_seconds)

        logger.error(
            "payout_lost key=%s account=%s amount=%d attempts=%d",
            idempotency_key,
            account_id,
            amount,
            attempts,
        )
        if self._event_bus is not None:
            self._event_bus.publish_nowait(
                "payout.lost",
                {
                    "idempotency_key": idempotency_key,
                    "account_id": account_id,
                    "amount": amount,
                    "reason": reason,
                    "attempts": attempts,
                },
            )
        raise PayoutLost(idempotency_key, attempts)

    def _remember_credit(self, idempotency_key: str, txn: LedgerTransaction) -> None:
        self._committed_credits[idempotency_key] = txn
        while len(self._committed_credits) > self._credit_memory:
            self._committed_credits.popitem(last=False)

    async def _attempt(
        self,
        account_id: str,
        amount: int,
        reason: str,
        idempotency_key: str,
        txn: LedgerTransaction | None = None,
    ) -> LedgerTransaction:
        """One bounded call to the authority. Never raises for authority failures."""
        if txn is None:
            txn = LedgerTransaction(
                account_id=account_id,
                delta=amount,
                reason=reason,
                idempotency_key=idempotency_key,
            )
            self._journal.append(txn)
        txn.attempts += 1
        txn.status = "pending"
        try:
            confirmed = await asyncio.wait_for(
                self._authority.apply_delta(account_id, amount, reason, idempotency_key),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            txn.status = "rejected"
            txn.error = "timeout"
            logger.warning(
                "ledger_timeout key=%s delta=%d after=%.1fs",
                idempotency_key,
                amount,
                self.timeout_seconds,
            )
            return txn
        except Exception as exc:  # Any authority failure is an unconfirmed mutation
            txn.status = "rejected"
            txn.error = "unavailable"
            logger.warning(
                "ledger_unavailable key=%s delta=%d error=%r", idempotency_key, amount, exc
            )
            return txn

        txn.status = "committed" if confirmed else "rejected"
        txn.error = "" if confirmed else "declined"
        return txn
