"""Trusted clock backed by the ledger store.

The host clock (and the client's) cannot be trusted to decide "what day is
it". Every date used for eligibility comes from the store's own timestamp,
converted to the reference timezone of the game.
"""

import asyncio
import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
)

from reward_engine.ledger.store import LedgerStore
from reward_engine.utils.errors import InvalidDateError

logger = logging.getLogger(__name__)


class TrustedClock:
    """Server-authoritative clock."""

    def __init__(
        self,
        store: LedgerStore,
        tz: ZoneInfo,
        double_read_delay: float = 0.05,
        max_attempts: int = 3,
    ) -> None:
        self.store = store
        self.tz = tz
        self.double_read_delay = double_read_delay
        self.max_attempts = max_attempts

    async def now(self) -> datetime:
        """Store timestamp in the reference timezone."""
        ts = await self.store.server_timestamp()
        return ts.astimezone(self.tz)

    async def today(self) -> date:
        return (await self.now()).date()

    async def _double_read(self) -> date:
        first = await self.today()
        await asyncio.sleep(self.double_read_delay)
        second = await self.today()
        if first != second:
            raise InvalidDateError(first.isoformat(), second.isoformat())
        return first

    async def verified_today(self) -> date:
        """Calendar date confirmed by two reads that agree.

        A disagreement (midnight rollover, clock jump) is retried with fresh
        reads before giving up.

        Raises:
            InvalidDateError: reads kept disagreeing
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                retry=retry_if_exception_type(InvalidDateError),
            ):
                with attempt:
                    return await self._double_read()
        except RetryError as e:
            last = e.last_attempt.exception()
            logger.warning(f"Trusted clock unstable after {self.max_attempts} reads: {last}")
            raise last from None
        raise InvalidDateError("", "")
