"""Check-in, coupon and coin schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from reward_engine.models.records import CalendarDate, RewardKind
from reward_engine.schemas.common import BaseSchema


# =============================================================================
# Requests
# =============================================================================


class ClaimRequest(BaseSchema):
    """Body of a claim; the token may also come from Idempotency-Key."""

    request_token: str | None = Field(None, alias="requestToken")


class CouponRequest(ClaimRequest):
    price: Decimal | None = Field(None, ge=0, description="Expected price, checked against the item")


class AdjustRequest(ClaimRequest):
    delta: Decimal = Field(..., description="Signed amount; negative values are debits")
    reason: str = Field("admin_adjust", min_length=1, max_length=64)


# =============================================================================
# Results
# =============================================================================


class ClaimResult(BaseSchema):
    """Outcome of a day or complete-reward claim."""

    checked: bool = True
    day_index: int | None = Field(None, alias="dayIndex")
    reward_kind: RewardKind | None = Field(None, alias="rewardKind")
    amount: Decimal | None = None
    code: str | None = None
    replayed: bool = False
    complete_reward_eligible: bool = Field(False, alias="completeRewardEligible")
    request_token: str = Field(..., alias="requestToken")


class CouponResult(BaseSchema):
    item_index: int = Field(..., alias="itemIndex")
    code: str
    price: Decimal
    balance: Decimal
    replayed: bool = False
    request_token: str = Field(..., alias="requestToken")


class DayStatus(BaseSchema):
    day_index: int = Field(..., alias="dayIndex")
    checked: bool = False
    date: CalendarDate | None = None
    reward_kind: RewardKind = Field(..., alias="rewardKind")
    amount: Decimal | None = None
    code: str | None = None


class CheckinStatus(BaseSchema):
    """Per-user view of one check-in game."""

    game_id: str = Field(..., alias="gameId")
    user_id: str = Field(..., alias="userId")
    today: date
    days: list[DayStatus] = Field(default_factory=list)
    next_claimable_day: int | None = Field(None, alias="nextClaimableDay")
    checked_count: int = Field(0, alias="checkedCount")
    complete_reward_eligible: bool = Field(False, alias="completeRewardEligible")
    complete_reward_claimed: bool = Field(False, alias="completeRewardClaimed")
    complete_reward_code: str | None = Field(None, alias="completeRewardCode")


class ClaimableResponse(BaseSchema):
    day_index: int | None = Field(None, alias="dayIndex")


class BalanceResponse(BaseSchema):
    user_id: str = Field(..., alias="userId")
    balance: Decimal


class PoolStatusResponse(BaseSchema):
    slot_id: str = Field(..., alias="slotId")
    total: int
    claimed: int
    remaining: int
    cursor: int


class MigrationResult(BaseSchema):
    """Records written by a legacy backfill."""

    migrated_days: list[int] = Field(default_factory=list, alias="migratedDays")
    complete_reward_migrated: bool = Field(False, alias="completeRewardMigrated")


class CheckinEntry(BaseSchema):
    """One stored day record in the game-wide listing."""

    user_id: str = Field(..., alias="userId")
    day_index: int = Field(..., alias="dayIndex")
    checked: bool
    date: CalendarDate | None = None
    request_token: str | None = Field(None, alias="requestToken")
    code: str | None = None
    created_at: datetime | None = Field(None, alias="createdAt")
    rolled_back_at: datetime | None = Field(None, alias="rolledBackAt")


class CoinTransactionResponse(BaseSchema):
    user_id: str = Field(..., alias="userId")
    amount: Decimal
    reason: str
    request_token: str = Field(..., alias="requestToken")
    balance_after: Decimal | None = Field(None, alias="balanceAfter")
    created_at: datetime | None = Field(None, alias="createdAt")
