"""Trusted clock tests."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from reward_engine.services.clock import TrustedClock
from reward_engine.utils.errors import InvalidDateError
from support import BANGKOK

# 23:59:59 and 00:00:01 in Bangkok (UTC+7)
BEFORE_MIDNIGHT = datetime(2026, 3, 10, 16, 59, 59, tzinfo=timezone.utc)
AFTER_MIDNIGHT = datetime(2026, 3, 10, 17, 0, 1, tzinfo=timezone.utc)


def make_clock(*timestamps: datetime, max_attempts: int = 3) -> TrustedClock:
    store = AsyncMock()
    store.server_timestamp = AsyncMock(side_effect=list(timestamps))
    return TrustedClock(store, BANGKOK, double_read_delay=0, max_attempts=max_attempts)


class TestTrustedClock:

    async def test_date_follows_reference_timezone(self):
        """20:00 UTC on the 9th is already the 10th in Bangkok."""
        clock = make_clock(datetime(2026, 3, 9, 20, 0, tzinfo=timezone.utc))

        assert await clock.today() == date(2026, 3, 10)

    async def test_now_is_in_reference_timezone(self):
        clock = make_clock(BEFORE_MIDNIGHT)

        now = await clock.now()

        assert now.utcoffset() == timedelta(hours=7)
        assert now.hour == 23

    async def test_verified_today_when_reads_agree(self):
        clock = make_clock(AFTER_MIDNIGHT, AFTER_MIDNIGHT)

        assert await clock.verified_today() == date(2026, 3, 11)

    async def test_verified_today_rereads_across_midnight(self):
        clock = make_clock(BEFORE_MIDNIGHT, AFTER_MIDNIGHT, AFTER_MIDNIGHT, AFTER_MIDNIGHT)

        assert await clock.verified_today() == date(2026, 3, 11)
        assert clock.store.server_timestamp.await_count == 4

    async def test_invalid_date_after_max_attempts(self):
        clock = make_clock(*[BEFORE_MIDNIGHT, AFTER_MIDNIGHT] * 3, max_attempts=3)

        with pytest.raises(InvalidDateError) as exc_info:
            await clock.verified_today()

        assert exc_info.value.recoverable is True
        assert exc_info.value.details == {"first": "2026-03-10", "second": "2026-03-11"}
        assert clock.store.server_timestamp.await_count == 6
