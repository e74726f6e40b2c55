"""Check-in game configuration published by the game admin."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import Field, field_validator, model_validator

from reward_engine.models.records import LedgerRecord, RewardKind


class DayReward(LedgerRecord):
    """Reward attached to one day (or to completing all days)."""

    kind: RewardKind
    amount: Decimal | None = None
    codes: list[str] = Field(default_factory=list)

    @field_validator("codes")
    @classmethod
    def strip_codes(cls, v: list[str]) -> list[str]:
        return [c.strip() for c in v if c and c.strip()]

    @model_validator(mode="after")
    def validate_kind(self) -> "DayReward":
        if self.kind == RewardKind.COIN:
            if self.amount is None or self.amount <= 0:
                raise ValueError("coin rewards need a positive amount")
        elif len(set(self.codes)) != len(self.codes):
            raise ValueError("code rewards must not repeat codes")
        return self


class CouponItem(LedgerRecord):
    """An item of the coupon shop: spend coins, receive a code."""

    title: str = ""
    price: Decimal = Field(ge=0)
    codes: list[str] = Field(default_factory=list)

    @field_validator("codes")
    @classmethod
    def strip_codes(cls, v: list[str]) -> list[str]:
        return [c.strip() for c in v if c and c.strip()]


class GameConfig(LedgerRecord):
    """games/{gameId}"""

    name: str = ""
    end_date: date | None = None
    rewards: list[DayReward] = Field(default_factory=list)
    complete_reward: DayReward | None = None
    coupon_items: list[CouponItem] = Field(default_factory=list)

    @property
    def total_days(self) -> int:
        return len(self.rewards)


def day_slot(day_index: int) -> str:
    return f"day-{day_index}"


COMPLETE_SLOT = "complete"


def coupon_slot(item_index: int) -> str:
    return f"coupon-{item_index}"
