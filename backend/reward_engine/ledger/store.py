"""Ledger store contract.

The ledger is a document store addressed by logical paths. The only atomic
primitive is an optimistic read-modify-write on ONE document:

    result = await store.run_transaction(path, fn)

``fn`` receives the current document (or None) and returns
``(new_document, result)``. Returning ``UNCHANGED`` as the new document
commits nothing. If another writer touched the document between the read
and the commit, the attempt is discarded and ``fn`` runs again on fresh data,
up to ``max_attempts`` times with incremental backoff. Exceptions raised by
``fn`` abort the transaction immediately and propagate.

There is no multi-document transaction; callers that touch several documents
compose single-document transactions (see services.claim_protocol).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from reward_engine.middleware.prometheus import record_transaction_failure
from reward_engine.utils.errors import TransactionFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Document = dict[str, Any]


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED: Any = _Unchanged()

TransactionFn = Callable[[Document | None], tuple[Document | Any, T]]


class TransactionConflict(Exception):
    """A concurrent writer committed first; the attempt must be retried."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Write conflict on {path}")


class LedgerStore(ABC):
    """Base class for transactional document stores."""

    def __init__(
        self,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def get(self, path: str) -> Document | None:
        """Read a document outside of any transaction."""

    @abstractmethod
    async def set(self, path: str, data: Document) -> None:
        """Unconditionally overwrite a document."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document if it exists."""

    @abstractmethod
    async def server_timestamp(self) -> datetime:
        """Timestamp generated by the store itself (timezone-aware, UTC)."""

    @abstractmethod
    async def scan(self, prefix: str) -> list[tuple[str, Document]]:
        """All documents whose path starts with ``prefix``, ordered by path."""

    @abstractmethod
    async def _attempt_transaction(self, path: str, fn: TransactionFn[T]) -> T:
        """Run ``fn`` once under optimistic concurrency control.

        Raises:
            TransactionConflict: if the document changed before commit
        """

    async def get_many(self, paths: Sequence[str]) -> list[Document | None]:
        """Read several documents concurrently (no snapshot guarantee)."""
        return list(await asyncio.gather(*(self.get(p) for p in paths)))

    async def run_transaction(self, path: str, fn: TransactionFn[T]) -> T:
        """Run ``fn`` as an optimistic transaction with bounded retries.

        Raises:
            TransactionFailedError: retries exhausted or the store timed out
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_incrementing(
                    start=self.backoff_seconds, increment=self.backoff_seconds
                ),
                retry=retry_if_exception_type(TransactionConflict),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
            ):
                with attempt:
                    return await asyncio.wait_for(
                        self._attempt_transaction(path, fn),
                        timeout=self.timeout_seconds,
                    )
        except RetryError as e:
            logger.warning(
                f"Transaction on {path} failed after {self.max_attempts} attempts"
            )
            record_transaction_failure("retries_exhausted")
            raise TransactionFailedError(path) from e
        except asyncio.TimeoutError as e:
            logger.warning(f"Transaction on {path} timed out")
            record_transaction_failure("timeout")
            raise TransactionFailedError(path, "timeout") from e
        raise TransactionFailedError(path)
