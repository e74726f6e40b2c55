"""SQLAlchemy-backed ledger store.

Documents live in ``ledger_documents`` with a ``version`` column. A
transaction reads (data, version), computes the new document, then issues
``UPDATE ... WHERE path = :path AND version = :version``. Zero affected rows
means another writer got there first. Creating a document relies on the
primary key: a concurrent insert of the same path fails with IntegrityError.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reward_engine.ledger.store import (
    UNCHANGED,
    Document,
    LedgerStore,
    T,
    TransactionConflict,
    TransactionFn,
)
from reward_engine.models.ledger import LedgerClockProbe, LedgerDocument

logger = logging.getLogger(__name__)


class SqlLedgerStore(LedgerStore):
    """Ledger store on PostgreSQL (or any SQLAlchemy async dialect)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.session_factory = session_factory

    async def get(self, path: str) -> Document | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(LedgerDocument.data).where(LedgerDocument.path == path)
            )
            return result.scalar_one_or_none()

    async def set(self, path: str, data: Document) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(LedgerDocument)
                    .where(LedgerDocument.path == path)
                    .values(data=data, version=LedgerDocument.version + 1)
                )
                if result.rowcount == 0:
                    session.add(LedgerDocument(path=path, data=data, version=1))

    async def delete(self, path: str) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(LedgerDocument).where(LedgerDocument.path == path)
                )

    async def scan(self, prefix: str) -> list[tuple[str, Document]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(LedgerDocument.path, LedgerDocument.data)
                .where(LedgerDocument.path.startswith(prefix, autoescape=True))
                .order_by(LedgerDocument.path)
            )
            return [(row.path, row.data) for row in result]

    async def server_timestamp(self) -> datetime:
        """Insert a throwaway probe, read its server-side timestamp, delete it."""
        async with self.session_factory() as session:
            async with session.begin():
                probe = LedgerClockProbe()
                session.add(probe)
                await session.flush()
                await session.refresh(probe)
                ts = probe.created_at
                await session.delete(probe)

        # SQLite returns naive UTC
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts

    async def _attempt_transaction(self, path: str, fn: TransactionFn[T]) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                row = (
                    await session.execute(
                        select(LedgerDocument.data, LedgerDocument.version).where(
                            LedgerDocument.path == path
                        )
                    )
                ).one_or_none()
                current = dict(row.data) if row is not None else None

                new_doc, result = fn(current)
                if new_doc is UNCHANGED:
                    return result

                if row is None:
                    session.add(LedgerDocument(path=path, data=new_doc, version=1))
                    try:
                        await session.flush()
                    except IntegrityError as e:
                        raise TransactionConflict(path) from e
                else:
                    updated = await session.execute(
                        update(LedgerDocument)
                        .where(
                            LedgerDocument.path == path,
                            LedgerDocument.version == row.version,
                        )
                        .values(data=new_doc, version=row.version + 1)
                    )
                    if updated.rowcount != 1:
                        logger.debug(f"Version conflict on {path} (v{row.version})")
                        raise TransactionConflict(path)
        return result
