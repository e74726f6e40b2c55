"""API dependencies shared by the routers."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from starlette.requests import HTTPConnection

from reward_engine.services import Services
from reward_engine.utils.tokens import is_valid_request_token, new_request_token


def get_services(conn: HTTPConnection) -> Services:
    """Service graph built at startup (see main.lifespan)."""
    services = getattr(conn.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready",
        )
    return services


ServicesDep = Annotated[Services, Depends(get_services)]


def resolve_request_token(
    body_token: str | None,
    idempotency_key: str | None,
) -> str:
    """Token from the body, else the Idempotency-Key header, else a new one.

    Raises:
        HTTPException: 422 if a supplied token is malformed
    """
    token = body_token or idempotency_key
    if token is None:
        return new_request_token()
    if not is_valid_request_token(token):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Malformed request token",
        )
    return token


def get_idempotency_key(
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> str | None:
    return idempotency_key


IdempotencyKey = Annotated[str | None, Depends(get_idempotency_key)]
