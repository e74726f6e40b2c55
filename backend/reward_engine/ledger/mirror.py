"""Best-effort read projection of ledger documents.

After a transaction commits, the written document is copied into a
short-lived Redis key and announced on a pub/sub channel so that open UIs
refresh without polling. Nothing reads the mirror to make a decision: a lost
or stale mirror write only delays what a user sees.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from reward_engine.ledger.store import Document
from reward_engine.utils.json_utils import json_dumps, json_loads

logger = logging.getLogger(__name__)


class LedgerMirror:
    """Redis cache + pub/sub fan-out of committed documents."""

    KEY_PREFIX = "mirror:doc:"
    CHANNEL_PREFIX = "mirror:channel:"

    def __init__(
        self,
        redis_client: Redis,
        ttl_seconds: int = 3600,
        enabled: bool = True,
    ) -> None:
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled

    async def publish(self, channel: str, path: str, data: Document | None) -> bool:
        """Project a committed document. Returns False if the mirror lagged."""
        if not self.enabled:
            return False

        message = {"path": path, "data": data}
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                if data is None:
                    pipe.delete(f"{self.KEY_PREFIX}{path}")
                else:
                    pipe.setex(f"{self.KEY_PREFIX}{path}", self.ttl_seconds, json_dumps(data))
                pipe.publish(f"{self.CHANNEL_PREFIX}{channel}", json_dumps(message))
                await pipe.execute()
        except RedisError as e:
            logger.warning(f"Mirror update failed for {path}: {e}")
            return False
        return True

    async def read(self, path: str) -> Document | None:
        """Cached projection of a document (may be stale or missing)."""
        raw = await self.redis.get(f"{self.KEY_PREFIX}{path}")
        return json_loads(raw) if raw is not None else None

    async def subscribe(self, *channels: str) -> AsyncIterator[dict[str, Any]]:
        """Yield ``{"path", "data"}`` messages published on ``channels``."""
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(*(f"{self.CHANNEL_PREFIX}{c}" for c in channels))
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                yield json_loads(message["data"])
        finally:
            await pubsub.unsubscribe()
            await pubsub.aclose()
