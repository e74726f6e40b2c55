"""Custom exception classes for claim errors.

Provides structured error handling with error codes and user-friendly messages.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for claim errors."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Claim protocol
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    LOST_RACE = "LOST_RACE"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"

    # Progression
    DAY_NOT_CLAIMABLE = "DAY_NOT_CLAIMABLE"
    INVALID_DATE = "INVALID_DATE"

    # Rewards
    CODES_EXHAUSTED = "CODES_EXHAUSTED"
    INVALID_REWARD = "INVALID_REWARD"
    GAME_NOT_FOUND = "GAME_NOT_FOUND"

    # Coins
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVALID_AMOUNT = "INVALID_AMOUNT"


class ClaimError(Exception):
    """Base exception for claim-related errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        recoverable: Whether retrying (with fresh state) may succeed
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            },
            "recoverable": self.recoverable,
        }


class AlreadyClaimedError(ClaimError):
    """Raised when the slot was already finalized by another attempt."""

    def __init__(self, path: str, message: str = "Already claimed"):
        super().__init__(
            code=ErrorCode.ALREADY_CLAIMED,
            message=message,
            details={"path": path},
        )


class LostRaceError(ClaimError):
    """Raised when post-commit verification finds another writer's token."""

    def __init__(self, path: str, winner_token: str | None):
        super().__init__(
            code=ErrorCode.LOST_RACE,
            message="Another attempt won this claim",
            details={"path": path, "winnerToken": winner_token},
        )


class TransactionFailedError(ClaimError):
    """Raised when optimistic retries are exhausted or a call times out.

    The write may or may not have happened; callers must re-read state.
    """

    def __init__(self, path: str, reason: str = "retries exhausted"):
        super().__init__(
            code=ErrorCode.TRANSACTION_FAILED,
            message="Transaction failed, please try again",
            details={"path": path, "reason": reason},
            recoverable=True,
        )


class DayNotClaimableError(ClaimError):
    """Raised when the requested day is not the user's claimable day."""

    def __init__(self, day_index: int, claimable_day: int | None):
        super().__init__(
            code=ErrorCode.DAY_NOT_CLAIMABLE,
            message=f"Day {day_index} cannot be claimed now",
            details={"dayIndex": day_index, "claimableDay": claimable_day},
        )


class InvalidDateError(ClaimError):
    """Raised when two trusted clock reads disagree on the calendar date."""

    def __init__(self, first: str, second: str):
        super().__init__(
            code=ErrorCode.INVALID_DATE,
            message="Server date could not be verified, please try again",
            details={"first": first, "second": second},
            recoverable=True,
        )


class CodesExhaustedError(ClaimError):
    """Raised when a code pool has no unclaimed code left."""

    def __init__(self, pool_path: str):
        super().__init__(
            code=ErrorCode.CODES_EXHAUSTED,
            message="No codes left for this reward",
            details={"pool": pool_path},
        )


class InvalidRewardError(ClaimError):
    """Raised when a game's reward configuration cannot be granted."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_REWARD,
            message=message,
            details=details,
        )


class GameNotFoundError(ClaimError):
    """Raised when a game configuration does not exist."""

    def __init__(self, game_id: str):
        super().__init__(
            code=ErrorCode.GAME_NOT_FOUND,
            message=f"Game not found: {game_id}",
            details={"gameId": game_id},
        )


class InsufficientBalanceError(ClaimError):
    """Raised when a debit would take the balance below zero."""

    def __init__(self, balance: Decimal, delta: Decimal):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_BALANCE,
            message=f"Insufficient balance: {balance}, requested {-delta}",
            details={"balance": str(balance), "delta": str(delta)},
        )


class InvalidAmountError(ClaimError):
    """Raised when an adjustment amount is not acceptable."""

    def __init__(self, amount: Decimal, reason: str):
        super().__init__(
            code=ErrorCode.INVALID_AMOUNT,
            message=f"Invalid amount {amount}: {reason}",
            details={"amount": str(amount)},
        )
