"""Idempotent claim protocol.

A claim is a write of one record that must happen at most once per key no
matter how many tabs, devices or retries race for it. Every attempt carries a
request token; the token is written into the record and decides, on any
later read, which attempt owns it:

1. optimistic transaction on the record: finalized with another token means
   AlreadyClaimed, finalized with our token is a replay, otherwise we write;
2. post-commit verification re-reads the record outside the transaction;
3. ``rollback`` restores the pre-attempt shape, but only while the record
   still carries our token.

Claims that span several records (check-in + code + coins) run inside a
``ClaimSaga`` which undoes the completed steps in reverse order on failure.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from reward_engine.ledger.mirror import LedgerMirror
from reward_engine.ledger.store import UNCHANGED, Document, LedgerStore
from reward_engine.middleware.prometheus import record_rollback
from reward_engine.utils.errors import AlreadyClaimedError, LostRaceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutation = Callable[[Document | None], Document]
FinalizedCheck = Callable[[Document | None], bool]


@dataclass
class ClaimReceipt:
    """Outcome of one committed (or replayed) claim write."""

    path: str
    request_token: str
    document: Document
    previous: Document | None = None
    restore_to: Document = field(default_factory=dict)
    replayed: bool = False


class ClaimProtocol:
    """Runs claim writes against the ledger store."""

    def __init__(
        self,
        store: LedgerStore,
        mirror: LedgerMirror | None = None,
    ) -> None:
        self.store = store
        self.mirror = mirror

    async def attempt(
        self,
        path: str,
        request_token: str,
        mutation: Mutation,
        is_finalized: FinalizedCheck,
        restore_to: Document | None = None,
        channel: str | None = None,
    ) -> ClaimReceipt:
        """Write a claim record at most once.

        Args:
            path: Record path
            request_token: Token of this attempt
            mutation: Builds the finalized record from the current one
            is_finalized: Whether a stored record is already claimed
            restore_to: Record written by rollback when the key was absent
            channel: Mirror channel notified after commit

        Raises:
            AlreadyClaimedError: finalized by another attempt
            LostRaceError: verification found another attempt's token
            TransactionFailedError: retries exhausted or timed out
        """

        def txn(current: Document | None):
            if is_finalized(current):
                if current.get("requestToken") == request_token:
                    receipt = ClaimReceipt(
                        path=path,
                        request_token=request_token,
                        document=current,
                        replayed=True,
                    )
                    return UNCHANGED, receipt
                raise AlreadyClaimedError(path)

            new_doc = mutation(dict(current) if current else None)
            new_doc["requestToken"] = request_token
            receipt = ClaimReceipt(
                path=path,
                request_token=request_token,
                document=new_doc,
                previous=current,
                restore_to=dict(restore_to or {}),
            )
            return new_doc, receipt

        receipt = await self.store.run_transaction(path, txn)
        if receipt.replayed:
            logger.info(f"Replayed claim on {path} ({request_token})")
            return receipt

        stored = await self.store.get(path)
        stored_token = stored.get("requestToken") if stored else None
        if stored_token != request_token:
            logger.warning(
                f"Lost race on {path}: wrote {request_token}, found {stored_token}"
            )
            await self.rollback(receipt)
            raise LostRaceError(path, stored_token)

        await self._publish(channel, path, receipt.document)
        return receipt

    async def rollback(self, receipt: ClaimReceipt, channel: str | None = None) -> bool:
        """Undo a committed claim if the record still carries its token.

        The record is never deleted: it is restored to its pre-attempt shape,
        or to ``restore_to`` when it did not exist before.

        Returns:
            True if the record was restored
        """
        if receipt.replayed:
            return False

        rolled_back_at = (await self.store.server_timestamp()).isoformat()

        def txn(current: Document | None):
            if current is None or current.get("requestToken") != receipt.request_token:
                return UNCHANGED, None
            restored = dict(receipt.previous or receipt.restore_to)
            restored["rolledBackAt"] = rolled_back_at
            return restored, restored

        restored = await self.store.run_transaction(receipt.path, txn)
        record_rollback(restored is not None)
        if restored is None:
            logger.info(f"Rollback skipped on {receipt.path}: token no longer ours")
            return False

        logger.info(f"Rolled back {receipt.path} ({receipt.request_token})")
        await self._publish(channel, receipt.path, restored)
        return True

    async def _publish(self, channel: str | None, path: str, data: Document) -> None:
        if self.mirror is not None and channel is not None:
            await self.mirror.publish(channel, path, data)


class SagaState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class ClaimSaga:
    """Per-attempt record of completed steps and how to undo them.

    Usage:
        async with ClaimSaga("claim_day", token) as saga:
            receipt = await saga.run("checkin", write, undo_write)
            code = await saga.run("code", allocate, release)

    Leaving the block with an exception compensates completed steps in
    reverse order and re-raises; leaving it normally commits.
    """

    def __init__(self, name: str, request_token: str) -> None:
        self.name = name
        self.request_token = request_token
        self.state = SagaState.PENDING
        self.completed_steps: list[str] = []
        self._compensations: list[tuple[str, Callable[[], Awaitable[Any]]]] = []

    async def run(
        self,
        step_name: str,
        action: Callable[[], Awaitable[T]],
        compensation: Callable[[T], Awaitable[Any]] | None = None,
    ) -> T:
        """Run a step; its compensation receives the step's result."""
        if self.state != SagaState.PENDING:
            raise RuntimeError(f"Saga {self.name} is already {self.state.value}")

        result = await action()
        self.completed_steps.append(step_name)
        if compensation is not None:
            self._compensations.append((step_name, lambda: compensation(result)))
        return result

    def commit(self) -> None:
        self.state = SagaState.COMMITTED

    async def compensate(self) -> None:
        """Undo completed steps in reverse order.

        A failing compensation is logged and the remaining ones still run.
        """
        while self._compensations:
            step_name, undo = self._compensations.pop()
            try:
                await undo()
            except Exception as e:
                logger.error(
                    f"Compensation of {self.name}.{step_name} failed "
                    f"({self.request_token}): {e}",
                    exc_info=True,
                )
        self.state = SagaState.ROLLED_BACK

    async def __aenter__(self) -> "ClaimSaga":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            if self.state == SagaState.PENDING:
                self.commit()
            return False
        if self.state == SagaState.PENDING:
            logger.info(
                f"Saga {self.name} failed after {self.completed_steps}: {exc}"
            )
            await self.compensate()
        return False
