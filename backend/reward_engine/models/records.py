"""Ledger record shapes.

Records are stored as camelCase JSON documents; these models give them
snake_case attributes and a single place for (de)serialization.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


CalendarDate = date


class RewardKind(str, Enum):
    """What a claim grants."""

    COIN = "coin"
    CODE = "code"


class LedgerRecord(BaseModel):
    """Base for documents kept in the ledger store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def from_doc(cls, doc: dict[str, Any] | None) -> Self | None:
        if doc is None:
            return None
        return cls.model_validate(doc)

    def to_doc(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ClaimRecord(LedgerRecord):
    """Fields shared by every record written through the claim protocol."""

    request_token: str | None = None
    created_at: datetime | None = None
    rolled_back_at: datetime | None = None
    reward_kind: RewardKind | None = None
    amount: Decimal | None = None
    code: str | None = None


class CheckinRecord(ClaimRecord):
    """checkins/{gameId}/users/{userId}/days/{dayIndex}"""

    checked: bool = False
    date: CalendarDate | None = None


class CompleteRewardRecord(ClaimRecord):
    """checkins/{gameId}/users/{userId}/rewards/completeReward"""

    claimed: bool = False


class CodePool(LedgerRecord):
    """codePools/{gameId}/{rewardSlotId}"""

    codes: list[str] = Field(default_factory=list)
    cursor: int = 0
    claimed_by: dict[str, str] = Field(default_factory=dict)

    @property
    def remaining(self) -> int:
        return sum(1 for c in self.codes if c not in self.claimed_by)


class CoinBalance(LedgerRecord):
    """balances/{userId}"""

    amount: Decimal = Decimal("0")
    recent_tokens: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"


class CoinTransaction(LedgerRecord):
    """coinTransactions/{userId}/{requestToken}

    Opened as ``pending`` before the balance changes and marked ``applied``
    once the balance commit is known, so a token is never applied twice.
    """

    user_id: str
    amount: Decimal
    reason: str
    request_token: str
    status: TransactionStatus = TransactionStatus.PENDING
    balance_after: Decimal | None = None
    created_at: datetime | None = None
