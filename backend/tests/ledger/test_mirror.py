"""Ledger mirror tests."""

from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from reward_engine.ledger import LedgerMirror


class TestLedgerMirror:

    async def test_publish_caches_document(self, mirror):
        assert await mirror.publish("users/u1", "docs/a", {"checked": True}) is True

        assert await mirror.read("docs/a") == {"checked": True}

    async def test_cache_expires(self, mirror, redis_client):
        await mirror.publish("users/u1", "docs/a", {"checked": True})

        ttl = await redis_client.ttl(f"{LedgerMirror.KEY_PREFIX}docs/a")
        assert 0 < ttl <= 60

    async def test_publish_none_clears_cache(self, mirror):
        await mirror.publish("users/u1", "docs/a", {"checked": True})
        await mirror.publish("users/u1", "docs/a", None)

        assert await mirror.read("docs/a") is None

    async def test_disabled_mirror_writes_nothing(self, redis_client):
        mirror = LedgerMirror(redis_client, enabled=False)

        assert await mirror.publish("users/u1", "docs/a", {"x": 1}) is False
        assert await mirror.read("docs/a") is None

    async def test_redis_failure_is_not_raised(self):
        """A lagging mirror must never fail the write it follows."""
        broken = MagicMock()
        broken.pipeline.side_effect = RedisConnectionError("down")
        mirror = LedgerMirror(broken)

        assert await mirror.publish("users/u1", "docs/a", {"x": 1}) is False
