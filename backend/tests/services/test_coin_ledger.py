"""Coin ledger tests: atomic, idempotent, never negative."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from reward_engine.ledger import paths
from reward_engine.services.coin_ledger import CoinLedger
from reward_engine.utils.errors import InsufficientBalanceError, InvalidAmountError


@pytest.fixture
def coins(store) -> CoinLedger:
    return CoinLedger(store, token_window=3)


class TestCoinLedger:

    async def test_unknown_user_has_zero(self, coins):
        assert await coins.get_balance("nobody") == Decimal("0")

    async def test_credit_then_debit(self, coins):
        assert await coins.adjust("u1", 100) == Decimal("100")
        assert await coins.adjust("u1", Decimal("-30.5"), allow_negative=True) == Decimal("69.5")
        assert await coins.get_balance("u1") == Decimal("69.5")

    async def test_amount_stored_as_string(self, coins, store):
        await coins.adjust("u1", "12.25")

        assert (await store.get(paths.balance("u1")))["amount"] == "12.25"

    async def test_debit_requires_allow_negative(self, coins):
        await coins.adjust("u1", 10)

        with pytest.raises(InvalidAmountError):
            await coins.adjust("u1", -5)

    @pytest.mark.parametrize("amount", [0, "0.00", "abc", "NaN"])
    async def test_rejects_invalid_amounts(self, coins, amount):
        with pytest.raises(InvalidAmountError):
            await coins.adjust("u1", amount)

    async def test_never_negative(self, coins):
        await coins.adjust("u1", 10)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await coins.adjust("u1", -11, allow_negative=True)

        assert exc_info.value.details == {"balance": "10", "delta": "-11"}
        assert await coins.get_balance("u1") == Decimal("10")

    async def test_same_token_applies_once(self, coins):
        await coins.adjust("u1", 50, request_token="grant-0001")

        assert await coins.adjust("u1", 50, request_token="grant-0001") == Decimal("50")
        assert await coins.get_balance("u1") == Decimal("50")

    async def test_token_window_is_bounded(self, coins, store):
        for i in range(5):
            await coins.adjust("u1", 1, request_token=f"grant-{i:04d}")

        doc = await store.get(paths.balance("u1"))
        assert doc["recentTokens"] == ["grant-0002", "grant-0003", "grant-0004"]

    async def test_concurrent_credits(self, coins):
        await asyncio.gather(*(coins.adjust("u1", 1) for _ in range(10)))

        assert await coins.get_balance("u1") == Decimal("10")

    async def test_concurrent_debits_stop_at_zero(self, coins):
        await coins.adjust("u1", 5)

        results = await asyncio.gather(
            *(coins.adjust("u1", -1, allow_negative=True) for _ in range(10)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, InsufficientBalanceError) for r in results) == 5
        assert await coins.get_balance("u1") == Decimal("0")


class TestTransactionLog:

    async def test_applied_entry_is_logged(self, coins, store):
        await coins.adjust("u1", 25, request_token="grant-0001", reason="bonus")

        entry = await store.get(paths.coin_transaction("u1", "grant-0001"))
        assert entry["status"] == "applied"
        assert entry["amount"] == "25"
        assert entry["reason"] == "bonus"
        assert entry["balanceAfter"] == "25"

    async def test_token_outside_window_still_applies_once(self, coins):
        await coins.adjust("u1", 50, request_token="grant-0001")
        for i in range(5):
            await coins.adjust("u1", 1, request_token=f"other-{i:04d}")

        assert await coins.adjust("u1", 50, request_token="grant-0001") == Decimal("55")
        assert await coins.get_balance("u1") == Decimal("55")

    async def test_rejected_debit_leaves_no_entry(self, coins, store):
        await coins.adjust("u1", 5, request_token="grant-0001")

        with pytest.raises(InsufficientBalanceError):
            await coins.adjust("u1", -10, request_token="spend-0001", allow_negative=True)

        assert await store.get(paths.coin_transaction("u1", "spend-0001")) is None
        await coins.adjust("u1", 10, request_token="grant-0002")
        assert await coins.adjust("u1", -10, request_token="spend-0001", allow_negative=True) == Decimal("5")

    async def test_pending_entry_settled_by_window(self, coins, store):
        """The caller died after the balance commit but before marking the entry."""
        await coins.adjust("u1", 20, request_token="grant-0001")
        entry = await store.get(paths.coin_transaction("u1", "grant-0001"))
        await store.set(
            paths.coin_transaction("u1", "grant-0001"), {**entry, "status": "pending"}
        )

        assert await coins.adjust("u1", 20, request_token="grant-0001") == Decimal("20")
        assert (await store.get(paths.coin_transaction("u1", "grant-0001")))["status"] == "applied"

    async def test_history_newest_first(self, coins, store):
        for i, day in enumerate([1, 3, 2]):
            store.server_timestamp.return_value = datetime(2026, 3, day, tzinfo=timezone.utc)
            await coins.adjust("u1", i + 1, request_token=f"grant-{i:04d}")
        await coins.adjust("u2", 7, request_token="grant-other")

        history = await coins.history("u1")

        assert [h.request_token for h in history] == ["grant-0001", "grant-0002", "grant-0000"]
        assert len(await coins.history("u1", limit=1)) == 1
