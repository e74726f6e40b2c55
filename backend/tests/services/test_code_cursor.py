"""Fair code cursor tests.

- No code is ever given to two claimants
- No unclaimed code is skipped while the pool reports exhaustion
- Released codes are re-offered by the wrap-around scan
"""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st
from prometheus_client import REGISTRY

from reward_engine.ledger import paths
from reward_engine.models.records import CodePool
from reward_engine.services.code_cursor import CodeCursor, allocate_code
from reward_engine.utils.errors import CodesExhaustedError

POOL = paths.code_pool("g1", "day-0")


@pytest.fixture
def cursor(store) -> CodeCursor:
    return CodeCursor(store)


class TestAllocateCode:

    def test_two_codes_three_claimants(self):
        """["A1", "A2"] with claimants u1, u2, u3."""
        first = allocate_code(None, "u1", ["A1", "A2"])
        second = allocate_code(first.pool, "u2", ["A1", "A2"])
        third = allocate_code(second.pool, "u3", ["A1", "A2"])

        assert (first.code, first.pool.cursor) == ("A1", 1)
        assert (second.code, second.pool.cursor) == ("A2", 2)
        assert third.code is None
        assert third.pool == second.pool

    def test_replay_returns_same_code(self):
        first = allocate_code(None, "u1", ["A1", "A2"])

        again = allocate_code(first.pool, "u1", ["A1", "A2"])

        assert again.code == "A1"
        assert again.replayed is True
        assert again.pool.cursor == 1

    def test_wrap_reoffers_released_code(self):
        pool = CodePool(codes=["A1", "A2", "A3"], cursor=3, claimed_by={"A2": "u2", "A3": "u3"})

        allocation = allocate_code(pool, "u4", ["A1", "A2", "A3"])

        assert allocation.code == "A1"
        assert allocation.pool.cursor == 3

    def test_reset_when_configured_codes_change(self):
        pool = CodePool(codes=["OLD"], cursor=1, claimed_by={"OLD": "u1"})

        allocation = allocate_code(pool, "u1", ["N1", "N2"])

        assert allocation.reset is True
        assert allocation.code == "N1"
        assert allocation.pool.claimed_by == {"N1": "u1"}

    @given(
        size=st.integers(min_value=0, max_value=6),
        claimants=st.lists(st.sampled_from(["u1", "u2", "u3", "u4", "u5", "u6", "u7"]), max_size=20),
    )
    @settings(max_examples=200, deadline=None)
    def test_allocation_properties(self, size, claimants):
        codes = [f"C{i}" for i in range(size)]
        pool = None
        seen_cursor = 0

        for claimant in claimants:
            allocation = allocate_code(pool, claimant, codes)
            pool = allocation.pool
            assert pool.cursor >= seen_cursor
            seen_cursor = pool.cursor

            if allocation.code is None:
                # exhausted only when every code is taken
                assert set(pool.claimed_by) == set(codes)
            else:
                assert pool.claimed_by[allocation.code] == claimant

        if pool is not None:
            holders = list(pool.claimed_by.values())
            assert len(holders) == len(set(holders))
            assert set(pool.claimed_by) <= set(codes)
            assert len(holders) == min(len(set(claimants)), size)


class TestCodeCursor:

    async def test_claim_exhaust_leaves_pool_untouched(self, cursor, store):
        assert await cursor.claim_next(POOL, "u1", ["A1", "A2"]) == "A1"
        assert await cursor.claim_next(POOL, "u2", ["A1", "A2"]) == "A2"
        before = await store.get(POOL)

        with pytest.raises(CodesExhaustedError):
            await cursor.claim_next(POOL, "u3", ["A1", "A2"])

        assert await store.get(POOL) == before

    async def test_release_then_wrap(self, cursor):
        await cursor.claim_next(POOL, "u1", ["A1", "A2"])
        await cursor.claim_next(POOL, "u2", ["A1", "A2"])

        assert await cursor.release(POOL, "u1", "A1") is True
        assert await cursor.claim_next(POOL, "u3", ["A1", "A2"]) == "A1"

        status = await cursor.pool_status(POOL)
        assert (status.claimed, status.remaining, status.cursor) == (2, 0, 2)

    async def test_release_by_other_claimant_is_ignored(self, cursor):
        await cursor.claim_next(POOL, "u1", ["A1"])

        assert await cursor.release(POOL, "u2", "A1") is False
        assert (await cursor.pool_status(POOL)).remaining == 0

    async def test_concurrent_claimants_get_distinct_codes(self, cursor):
        codes = [f"K{i}" for i in range(5)]

        results = await asyncio.gather(
            *(cursor.claim_next(POOL, f"user-{i}", codes) for i in range(10)),
            return_exceptions=True,
        )

        granted = [r for r in results if isinstance(r, str)]
        assert sorted(granted) == codes
        assert sum(isinstance(r, CodesExhaustedError) for r in results) == 5

    async def test_pool_status_before_first_claim(self, cursor):
        status = await cursor.pool_status(POOL, ["A1", "A2"])

        assert (status.total, status.claimed, status.remaining) == (2, 0, 2)

    async def test_allocation_metric_labelled_by_slot_type(self, cursor):
        def allocated(slot_type):
            return REGISTRY.get_sample_value(
                "reward_engine_codes_allocated_total", {"slot_type": slot_type}
            ) or 0.0

        before = allocated("coupon")

        await cursor.claim_next(paths.code_pool("g1", "coupon-7"), "u1", ["A1"])

        assert allocated("coupon") == before + 1
        assert REGISTRY.get_sample_value(
            "reward_engine_codes_allocated_total", {"slot_type": "coupon-7"}
        ) is None
