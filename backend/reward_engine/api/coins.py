"""Coin balance API."""

from fastapi import APIRouter, Query

from reward_engine.api.deps import IdempotencyKey, ServicesDep, resolve_request_token
from reward_engine.logging_config import bind_claim_context
from reward_engine.schemas.checkin import (
    AdjustRequest,
    BalanceResponse,
    CoinTransactionResponse,
)
from reward_engine.schemas.common import ErrorResponse

router = APIRouter(prefix="/coins", tags=["Coins"])


@router.get("/{user_id}", response_model=BalanceResponse)
async def get_balance(user_id: str, services: ServicesDep):
    balance = await services.checkin.get_balance(user_id)
    return BalanceResponse(user_id=user_id, balance=balance)


@router.get("/{user_id}/transactions", response_model=list[CoinTransactionResponse])
async def get_transactions(
    user_id: str,
    services: ServicesDep,
    limit: int = Query(100, ge=1, le=1000),
):
    """Applied coin adjustments, newest first."""
    return await services.checkin.get_transactions(user_id, limit)


@router.post(
    "/{user_id}/adjust",
    response_model=BalanceResponse,
    responses={
        402: {"model": ErrorResponse, "description": "Insufficient balance"},
        422: {"model": ErrorResponse, "description": "Invalid amount"},
        503: {"model": ErrorResponse, "description": "Transaction failed, retry"},
    },
)
async def adjust_balance(
    user_id: str,
    body: AdjustRequest,
    services: ServicesDep,
    idempotency_key: IdempotencyKey,
):
    """Credit or debit coins.

    - The balance never goes below zero (402 Insufficient Balance)
    - Re-sending the same request token applies the adjustment once
    """
    token = resolve_request_token(body.request_token, idempotency_key)
    bind_claim_context(token, user_id=user_id)
    balance = await services.checkin.adjust_balance(
        user_id, body.delta, token, reason=body.reason
    )
    return BalanceResponse(user_id=user_id, balance=balance)
