"""Check-in API."""

from fastapi import APIRouter, Body, Path

from reward_engine.api.deps import IdempotencyKey, ServicesDep, resolve_request_token
from reward_engine.logging_config import bind_claim_context
from reward_engine.schemas.checkin import (
    CheckinEntry,
    CheckinStatus,
    ClaimableResponse,
    ClaimRequest,
    ClaimResult,
    CouponRequest,
    CouponResult,
    MigrationResult,
)
from reward_engine.schemas.common import ErrorResponse

router = APIRouter(prefix="/checkin", tags=["Checkin"])


@router.get(
    "/{game_id}",
    response_model=list[CheckinEntry],
    responses={
        404: {"model": ErrorResponse, "description": "Game not found"},
    },
)
async def list_game_checkins(game_id: str, services: ServicesDep):
    """All users' day records of a game (admin)."""
    return await services.checkin.list_game_checkins(game_id)


@router.get(
    "/{game_id}/users/{user_id}",
    response_model=CheckinStatus,
    responses={
        404: {"model": ErrorResponse, "description": "Game not found"},
    },
)
async def get_status(game_id: str, user_id: str, services: ServicesDep):
    """Per-day records, next claimable day and complete reward state."""
    return await services.checkin.get_status(game_id, user_id)


@router.get(
    "/{game_id}/users/{user_id}/claimable",
    response_model=ClaimableResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Game not found"},
        503: {"model": ErrorResponse, "description": "Server date could not be verified"},
    },
)
async def get_claimable_day(game_id: str, user_id: str, services: ServicesDep):
    day_index = await services.checkin.get_claimable_day(game_id, user_id)
    return ClaimableResponse(day_index=day_index)


@router.post(
    "/{game_id}/users/{user_id}/days/{day_index}",
    response_model=ClaimResult,
    responses={
        404: {"model": ErrorResponse, "description": "Game not found"},
        409: {"model": ErrorResponse, "description": "Already claimed or not claimable"},
        410: {"model": ErrorResponse, "description": "No codes left"},
        503: {"model": ErrorResponse, "description": "Transaction failed, retry"},
    },
)
async def claim_day(
    game_id: str,
    user_id: str,
    services: ServicesDep,
    idempotency_key: IdempotencyKey,
    day_index: int = Path(..., ge=0),
    body: ClaimRequest | None = Body(default=None),
):
    """Check in a day.

    - Days are claimed in order, at most one per calendar day
    - Re-sending the same request token returns the first result
    """
    token = resolve_request_token(body.request_token if body else None, idempotency_key)
    bind_claim_context(token, game_id=game_id, user_id=user_id, day_index=day_index)
    return await services.checkin.claim_day(game_id, user_id, day_index, token)


@router.post(
    "/{game_id}/users/{user_id}/complete",
    response_model=ClaimResult,
    responses={
        404: {"model": ErrorResponse, "description": "Game not found"},
        409: {"model": ErrorResponse, "description": "Already claimed or days missing"},
        410: {"model": ErrorResponse, "description": "No codes left"},
        422: {"model": ErrorResponse, "description": "Game has no complete reward"},
    },
)
async def claim_complete_reward(
    game_id: str,
    user_id: str,
    services: ServicesDep,
    idempotency_key: IdempotencyKey,
    body: ClaimRequest | None = Body(default=None),
):
    """Claim the reward for checking in every day."""
    token = resolve_request_token(body.request_token if body else None, idempotency_key)
    bind_claim_context(token, game_id=game_id, user_id=user_id)
    return await services.checkin.claim_complete_reward(game_id, user_id, token)


@router.post(
    "/{game_id}/users/{user_id}/coupons/{item_index}",
    response_model=CouponResult,
    responses={
        402: {"model": ErrorResponse, "description": "Insufficient balance"},
        404: {"model": ErrorResponse, "description": "Game not found"},
        410: {"model": ErrorResponse, "description": "Item sold out"},
        422: {"model": ErrorResponse, "description": "Unknown item or price changed"},
    },
)
async def redeem_coupon(
    game_id: str,
    user_id: str,
    services: ServicesDep,
    idempotency_key: IdempotencyKey,
    item_index: int = Path(..., ge=0),
    body: CouponRequest | None = Body(default=None),
):
    """Spend coins on a coupon item and receive one of its codes."""
    token = resolve_request_token(body.request_token if body else None, idempotency_key)
    bind_claim_context(token, game_id=game_id, user_id=user_id, item_index=item_index)
    return await services.checkin.redeem_coupon(
        game_id, user_id, item_index, body.price if body else None, token
    )


@router.post(
    "/{game_id}/users/{user_id}/migrate",
    response_model=MigrationResult,
    responses={
        404: {"model": ErrorResponse, "description": "Game not found"},
    },
)
async def migrate_user(game_id: str, user_id: str, services: ServicesDep):
    """Backfill legacy check-in records of one user."""
    game = await services.games.get(game_id)
    return await services.migrator.migrate_user(game_id, user_id, game.total_days)
