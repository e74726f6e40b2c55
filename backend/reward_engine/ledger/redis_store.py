"""Redis-backed ledger store.

Each document is one Redis string holding JSON. Transactions use
WATCH / MULTI / EXEC: EXEC fails with WatchError when the watched key was
written by another client after WATCH, which is exactly the optimistic
compare-and-set the ledger contract asks for.
"""

import logging
import re
from datetime import datetime, timezone

from redis.asyncio import Redis
from redis.exceptions import WatchError

from reward_engine.ledger.store import (
    UNCHANGED,
    Document,
    LedgerStore,
    T,
    TransactionConflict,
    TransactionFn,
)
from reward_engine.utils.json_utils import json_dumps, json_loads

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"[\\*?\[\]]")


class RedisLedgerStore(LedgerStore):
    """Ledger store on a single Redis primary."""

    def __init__(
        self,
        redis_client: Redis,
        key_prefix: str = "ledger",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _key(self, path: str) -> str:
        return f"{self.key_prefix}:{path}"

    async def get(self, path: str) -> Document | None:
        raw = await self.redis.get(self._key(path))
        if raw is None:
            return None
        return json_loads(raw)

    async def set(self, path: str, data: Document) -> None:
        await self.redis.set(self._key(path), json_dumps(data))

    async def delete(self, path: str) -> None:
        await self.redis.delete(self._key(path))

    async def scan(self, prefix: str) -> list[tuple[str, Document]]:
        """SCAN the keyspace for ``prefix``; glob characters in it are escaped."""
        pattern = _GLOB_SPECIAL.sub(r"\\\g<0>", self._key(prefix)) + "*"
        keys = sorted([key async for key in self.redis.scan_iter(match=pattern, count=500)])
        if not keys:
            return []

        offset = len(self.key_prefix) + 1
        values = await self.redis.mget(keys)
        return [
            (key[offset:], json_loads(raw))
            for key, raw in zip(keys, values)
            if raw is not None
        ]

    async def server_timestamp(self) -> datetime:
        """Read the Redis server clock (TIME), never the local host clock."""
        seconds, microseconds = await self.redis.time()
        return datetime.fromtimestamp(
            int(seconds) + int(microseconds) / 1_000_000, tz=timezone.utc
        )

    async def _attempt_transaction(self, path: str, fn: TransactionFn[T]) -> T:
        key = self._key(path)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                current = json_loads(raw) if raw is not None else None

                new_doc, result = fn(current)
                if new_doc is UNCHANGED:
                    return result

                pipe.multi()
                pipe.set(key, json_dumps(new_doc))
                await pipe.execute()
            except WatchError as e:
                logger.debug(f"WATCH conflict on {key}")
                raise TransactionConflict(path) from e
        return result
