"""SQL ledger store tests (SQLite through aiosqlite)."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from reward_engine.ledger import UNCHANGED, SqlLedgerStore
from reward_engine.models.ledger import LedgerClockProbe, LedgerDocument
from reward_engine.utils.db import create_session_factory, create_tables


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def sql_store(session_factory) -> SqlLedgerStore:
    return SqlLedgerStore(session_factory, max_attempts=3, backoff_seconds=0.001)


async def stored_version(session_factory, path: str) -> int | None:
    async with session_factory() as session:
        result = await session.execute(
            select(LedgerDocument.version).where(LedgerDocument.path == path)
        )
        return result.scalar_one_or_none()


class TestSqlLedgerStore:

    async def test_set_get_delete(self, sql_store):
        assert await sql_store.get("docs/a") is None

        await sql_store.set("docs/a", {"value": 1})
        await sql_store.set("docs/a", {"value": 2})
        assert await sql_store.get("docs/a") == {"value": 2}

        await sql_store.delete("docs/a")
        assert await sql_store.get("docs/a") is None

    async def test_non_object_values_round_trip(self, sql_store):
        """Legacy records may be bare booleans."""
        await sql_store.set("legacy/flag", True)

        assert await sql_store.get("legacy/flag") is True

    async def test_scan_by_prefix(self, sql_store):
        await sql_store.set("docs/b", {"v": "b"})
        await sql_store.set("docs/a", {"v": "a"})
        await sql_store.set("docs_x/a", {"v": "x"})

        assert await sql_store.scan("docs/") == [("docs/a", {"v": "a"}), ("docs/b", {"v": "b"})]
        assert await sql_store.scan("docs_") == [("docs_x/a", {"v": "x"})]

    async def test_transaction_bumps_version(self, sql_store, session_factory):
        def increment(current):
            count = (current or {}).get("count", 0) + 1
            return {"count": count}, count

        assert await sql_store.run_transaction("counter", increment) == 1
        assert await stored_version(session_factory, "counter") == 1

        assert await sql_store.run_transaction("counter", increment) == 2
        assert await stored_version(session_factory, "counter") == 2
        assert await sql_store.get("counter") == {"count": 2}

    async def test_unchanged_keeps_version(self, sql_store, session_factory):
        await sql_store.run_transaction("docs/a", lambda cur: ({"v": 1}, None))

        await sql_store.run_transaction("docs/a", lambda cur: (UNCHANGED, None))

        assert await stored_version(session_factory, "docs/a") == 1

    async def test_exception_rolls_back(self, sql_store):
        def boom(current):
            raise RuntimeError("rejected")

        with pytest.raises(RuntimeError):
            await sql_store.run_transaction("docs/a", boom)

        assert await sql_store.get("docs/a") is None

    async def test_server_timestamp_leaves_no_clock_rows(self, sql_store, session_factory):
        ts = await sql_store.server_timestamp()

        assert ts.tzinfo is not None
        assert abs((datetime.now(timezone.utc) - ts).total_seconds()) < 60
        async with session_factory() as session:
            rows = (await session.execute(select(LedgerClockProbe))).scalars().all()
        assert rows == []
