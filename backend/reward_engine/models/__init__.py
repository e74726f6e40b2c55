"""Ledger models."""

from reward_engine.models.base import Base, TimestampMixin
from reward_engine.models.game import CouponItem, DayReward, GameConfig
from reward_engine.models.ledger import LedgerClockProbe, LedgerDocument
from reward_engine.models.records import (
    CheckinRecord,
    CodePool,
    CoinBalance,
    CoinTransaction,
    CompleteRewardRecord,
    RewardKind,
    TransactionStatus,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # SQL ledger tables
    "LedgerDocument",
    "LedgerClockProbe",
    # Records
    "CheckinRecord",
    "CompleteRewardRecord",
    "CodePool",
    "CoinBalance",
    "CoinTransaction",
    "RewardKind",
    "TransactionStatus",
    # Game configuration
    "GameConfig",
    "DayReward",
    "CouponItem",
]
