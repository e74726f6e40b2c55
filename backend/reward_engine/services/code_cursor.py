"""Fair code cursor.

Hands out the codes of a finite pool so that no code goes to two claimants
and no unclaimed code is skipped. Allocation scans forward from a monotonic
cursor and wraps around to pick up codes released by compensation.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from reward_engine.ledger.store import UNCHANGED, Document, LedgerStore
from reward_engine.middleware.prometheus import (
    record_code_allocated,
    record_code_released,
    record_codes_exhausted,
)
from reward_engine.models.records import CodePool
from reward_engine.utils.errors import CodesExhaustedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    pool: CodePool
    code: str | None
    replayed: bool = False
    reset: bool = False


@dataclass(frozen=True)
class PoolStatus:
    total: int
    claimed: int
    remaining: int
    cursor: int


def allocate_code(
    pool: CodePool | None,
    claimant_id: str,
    configured_codes: Sequence[str] | None = None,
) -> Allocation:
    """Pick the next code for ``claimant_id``.

    A pool whose stored codes differ from ``configured_codes`` is replaced by
    a fresh one. ``code`` is None when every code is claimed.
    """
    reset = False
    if pool is None:
        pool = CodePool(codes=list(configured_codes or []))
    elif configured_codes is not None and list(configured_codes) != pool.codes:
        pool = CodePool(codes=list(configured_codes))
        reset = True

    for code, owner in pool.claimed_by.items():
        if owner == claimant_id and code in pool.codes:
            return Allocation(pool, code, replayed=True, reset=reset)

    size = len(pool.codes)
    order = list(range(pool.cursor, size)) + list(range(0, min(pool.cursor, size)))
    for position in order:
        code = pool.codes[position]
        if code in pool.claimed_by:
            continue
        allocated = pool.model_copy(
            update={
                "cursor": max(pool.cursor, position + 1),
                "claimed_by": {**pool.claimed_by, code: claimant_id},
            }
        )
        return Allocation(allocated, code, reset=reset)

    return Allocation(pool, None, reset=reset)


class CodeCursor:
    """Code pool allocation on the ledger store."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def claim_next(
        self,
        pool_path: str,
        claimant_id: str,
        configured_codes: Sequence[str] | None = None,
    ) -> str:
        """Allocate a code to ``claimant_id`` (same code on replay).

        Raises:
            CodesExhaustedError: no unclaimed code left
            TransactionFailedError: retries exhausted
        """

        def txn(current: Document | None):
            allocation = allocate_code(
                CodePool.from_doc(current), claimant_id, configured_codes
            )
            if allocation.code is None:
                raise CodesExhaustedError(pool_path)
            if allocation.replayed and not allocation.reset:
                return UNCHANGED, allocation
            return allocation.pool.to_doc(), allocation

        try:
            allocation = await self.store.run_transaction(pool_path, txn)
        except CodesExhaustedError:
            record_codes_exhausted()
            logger.info(f"Code pool exhausted: {pool_path}")
            raise

        if allocation.reset:
            logger.info(f"Code pool {pool_path} reset to {len(allocation.pool.codes)} codes")
        if not allocation.replayed:
            record_code_allocated(pool_path.rsplit("/", 1)[-1])
        return allocation.code

    async def release(self, pool_path: str, claimant_id: str, code: str) -> bool:
        """Return ``code`` to the pool if ``claimant_id`` still holds it."""

        def txn(current: Document | None):
            pool = CodePool.from_doc(current)
            if pool is None or pool.claimed_by.get(code) != claimant_id:
                return UNCHANGED, False
            claimed_by = {c: o for c, o in pool.claimed_by.items() if c != code}
            return pool.model_copy(update={"claimed_by": claimed_by}).to_doc(), True

        released = await self.store.run_transaction(pool_path, txn)
        if released:
            record_code_released()
            logger.info(f"Released code on {pool_path} held by {claimant_id}")
        return released

    async def pool_status(
        self, pool_path: str, configured_codes: Sequence[str] | None = None
    ) -> PoolStatus:
        """Counts of a pool; a pool not yet written reports its configured codes."""
        pool = CodePool.from_doc(await self.store.get(pool_path))
        if pool is None or (
            configured_codes is not None and list(configured_codes) != pool.codes
        ):
            pool = CodePool(codes=list(configured_codes or []))
        claimed = sum(1 for c in pool.codes if c in pool.claimed_by)
        return PoolStatus(
            total=len(pool.codes),
            claimed=claimed,
            remaining=pool.remaining,
            cursor=pool.cursor,
        )
