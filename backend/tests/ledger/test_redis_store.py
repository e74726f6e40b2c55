"""Redis ledger store tests.

- Plain get / set / delete
- Optimistic transactions (commit, UNCHANGED, abort on exception)
- Concurrent read-modify-write never loses an update
- Retry exhaustion and timeouts surface as TransactionFailedError
- Server clock comes from Redis TIME
"""

import asyncio
from datetime import datetime, timezone

import pytest

from reward_engine.ledger import UNCHANGED, RedisLedgerStore, TransactionConflict
from reward_engine.utils.errors import TransactionFailedError


def increment(current):
    count = (current or {}).get("count", 0) + 1
    return {"count": count}, count


class TestPlainAccess:

    async def test_missing_document_is_none(self, store):
        assert await store.get("nothing/here") is None

    async def test_set_get_delete(self, store):
        await store.set("docs/a", {"value": 1})
        assert await store.get("docs/a") == {"value": 1}

        await store.delete("docs/a")
        assert await store.get("docs/a") is None

    async def test_keys_are_prefixed(self, store, redis_client):
        await store.set("docs/a", {"value": 1})
        assert await redis_client.exists("test:docs/a") == 1

    async def test_get_many_keeps_order(self, store):
        await store.set("docs/a", {"v": "a"})
        await store.set("docs/c", {"v": "c"})

        docs = await store.get_many(["docs/a", "docs/b", "docs/c"])

        assert docs == [{"v": "a"}, None, {"v": "c"}]

    async def test_scan_by_prefix(self, store):
        await store.set("docs/b", {"v": "b"})
        await store.set("docs/a", {"v": "a"})
        await store.set("other/a", {"v": "x"})

        assert await store.scan("docs/") == [("docs/a", {"v": "a"}), ("docs/b", {"v": "b"})]

    async def test_scan_escapes_glob_characters(self, store):
        await store.set("docs/a*/1", {"v": 1})
        await store.set("docs/ab/1", {"v": 2})

        assert await store.scan("docs/a*/") == [("docs/a*/1", {"v": 1})]


class TestTransactions:

    async def test_creates_document(self, store):
        result = await store.run_transaction("counter", increment)

        assert result == 1
        assert await store.get("counter") == {"count": 1}

    async def test_unchanged_commits_nothing(self, store):
        await store.set("docs/a", {"value": 1})

        result = await store.run_transaction("docs/a", lambda cur: (UNCHANGED, cur["value"]))

        assert result == 1
        assert await store.get("docs/a") == {"value": 1}

    async def test_exception_aborts_without_write(self, store):
        def boom(current):
            raise ValueError("rejected")

        with pytest.raises(ValueError):
            await store.run_transaction("docs/a", boom)

        assert await store.get("docs/a") is None

    async def test_concurrent_increments_are_not_lost(self, store):
        """Every transaction commits exactly once despite WATCH conflicts."""
        results = await asyncio.gather(
            *(store.run_transaction("counter", increment) for _ in range(10))
        )

        assert sorted(results) == list(range(1, 11))
        assert await store.get("counter") == {"count": 10}


class ConflictingStore(RedisLedgerStore):
    """Every attempt loses the race."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.attempts = 0

    async def _attempt_transaction(self, path, fn):
        self.attempts += 1
        raise TransactionConflict(path)


class SlowStore(RedisLedgerStore):
    async def _attempt_transaction(self, path, fn):
        await asyncio.sleep(1)


class TestFailures:

    async def test_retries_exhausted(self, redis_client):
        store = ConflictingStore(redis_client, max_attempts=5, backoff_seconds=0.001)

        with pytest.raises(TransactionFailedError) as exc_info:
            await store.run_transaction("docs/a", increment)

        assert store.attempts == 5
        assert exc_info.value.recoverable is True
        assert exc_info.value.details == {"path": "docs/a", "reason": "retries exhausted"}

    async def test_timeout(self, redis_client):
        store = SlowStore(redis_client, timeout_seconds=0.01)

        with pytest.raises(TransactionFailedError) as exc_info:
            await store.run_transaction("docs/a", increment)

        assert exc_info.value.details["reason"] == "timeout"


class TestServerTimestamp:

    async def test_uses_redis_time(self, redis_client):
        store = RedisLedgerStore(redis_client)

        ts = await store.server_timestamp()

        assert ts.tzinfo is not None
        assert abs((datetime.now(timezone.utc) - ts).total_seconds()) < 60
