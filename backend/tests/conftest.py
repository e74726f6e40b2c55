"""Shared fixtures: fakeredis-backed ledger, pinned store clock, sample games."""

from decimal import Decimal
from unittest.mock import AsyncMock

import fakeredis
import pytest
import pytest_asyncio

from reward_engine.ledger import LedgerMirror, RedisLedgerStore
from reward_engine.models.game import CouponItem, DayReward, GameConfig
from reward_engine.models.records import RewardKind
from reward_engine.services.checkin import CheckinService
from reward_engine.services.clock import TrustedClock
from support import BANGKOK, TODAY, noon


# =============================================================================
# Ledger Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(
        server=fakeredis.FakeServer(), decode_responses=True
    )
    yield client
    await client.aclose()


@pytest.fixture
def store(redis_client) -> RedisLedgerStore:
    """Redis ledger whose server clock is pinned to noon of TODAY."""
    store = RedisLedgerStore(
        redis_client,
        key_prefix="test",
        max_attempts=50,
        backoff_seconds=0.001,
        timeout_seconds=5.0,
    )
    store.server_timestamp = AsyncMock(return_value=noon(TODAY))
    return store


@pytest.fixture
def mirror(redis_client) -> LedgerMirror:
    return LedgerMirror(redis_client, ttl_seconds=60)


@pytest.fixture
def clock(store) -> TrustedClock:
    return TrustedClock(store, BANGKOK, double_read_delay=0, max_attempts=3)


@pytest.fixture
def service(store, clock, mirror) -> CheckinService:
    return CheckinService(store, clock, mirror=mirror, token_window=100)


# =============================================================================
# Games
# =============================================================================


@pytest.fixture
def coin_game() -> GameConfig:
    """Three coin days, a coin complete reward and a coupon shop."""
    return GameConfig(
        name="March check-in",
        rewards=[
            DayReward(kind=RewardKind.COIN, amount=Decimal("10")),
            DayReward(kind=RewardKind.COIN, amount=Decimal("20")),
            DayReward(kind=RewardKind.COIN, amount=Decimal("30")),
        ],
        complete_reward=DayReward(kind=RewardKind.COIN, amount=Decimal("100")),
        coupon_items=[
            CouponItem(title="Voucher", price=Decimal("50"), codes=["C1", "C2", "C3"]),
            CouponItem(title="Free sticker", price=Decimal("0"), codes=["S1"]),
        ],
    )


@pytest.fixture
def code_game() -> GameConfig:
    """Two code days with tiny pools and a code complete reward."""
    return GameConfig(
        name="Code drop",
        rewards=[
            DayReward(kind=RewardKind.CODE, codes=["X1"]),
            DayReward(kind=RewardKind.CODE, codes=["Y1", "Y2"]),
        ],
        complete_reward=DayReward(kind=RewardKind.CODE, codes=["Z1"]),
    )


@pytest_asyncio.fixture
async def coin_game_id(service, coin_game) -> str:
    await service.games.put("coins", coin_game)
    return "coins"


@pytest_asyncio.fixture
async def code_game_id(service, code_game) -> str:
    await service.games.put("codes", code_game)
    return "codes"
