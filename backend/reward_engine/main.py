"""FastAPI application entry point.

Daily reward engine API: check-ins, code pools, coupons and coin balances.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from reward_engine import __version__
from reward_engine.api import checkin_router, coins_router, events_router, games_router
from reward_engine.config import Settings, get_settings
from reward_engine.ledger import LedgerMirror, LedgerStore, RedisLedgerStore, SqlLedgerStore
from reward_engine.logging_config import clear_context, configure_logging, get_logger
from reward_engine.middleware.prometheus import setup_prometheus
from reward_engine.services import build_services
from reward_engine.utils import db
from reward_engine.utils.errors import ClaimError, ErrorCode
from reward_engine.utils.json_utils import ORJSONResponse
from reward_engine.utils.redis_client import close_redis, init_redis

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
    app_env=settings.app_env,
)
logger = get_logger(__name__)


# HTTP status per error code
ERROR_STATUS: dict[str, int] = {
    ErrorCode.ALREADY_CLAIMED.value: status.HTTP_409_CONFLICT,
    ErrorCode.LOST_RACE.value: status.HTTP_409_CONFLICT,
    ErrorCode.DAY_NOT_CLAIMABLE.value: status.HTTP_409_CONFLICT,
    ErrorCode.TRANSACTION_FAILED.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INVALID_DATE.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CODES_EXHAUSTED.value: status.HTTP_410_GONE,
    ErrorCode.INSUFFICIENT_BALANCE.value: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.GAME_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_AMOUNT.value: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_REWARD.value: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_REQUEST.value: status.HTTP_400_BAD_REQUEST,
}


async def build_store(settings_: Settings) -> tuple[LedgerStore, LedgerMirror]:
    """Connect the configured ledger backend and the Redis mirror."""
    redis_instance = await init_redis()
    retry = {
        "max_attempts": settings_.claim_max_attempts,
        "backoff_seconds": settings_.claim_backoff_seconds,
        "timeout_seconds": settings_.claim_timeout_seconds,
    }

    store: LedgerStore
    if settings_.ledger_backend == "postgres":
        session_factory = await db.init_db()
        store = SqlLedgerStore(session_factory, **retry)
    else:
        store = RedisLedgerStore(redis_instance, key_prefix=settings_.ledger_key_prefix, **retry)

    mirror = LedgerMirror(
        redis_instance,
        ttl_seconds=settings_.mirror_ttl_seconds,
        enabled=settings_.mirror_enabled,
    )
    return store, mirror


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting application...")

    try:
        logger.info(f"Initializing {settings.ledger_backend} ledger store...")
        store, mirror = await build_store(settings)
        _app.state.services = build_services(settings, store, mirror)
        logger.info("Ledger store ready")
        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down application...")
    await db.close_db()
    await close_redis()
    logger.info("Application shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Daily Reward Engine API",
    version=__version__,
    description="Daily check-ins, prize code pools and coin balances",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

prometheus_instrumentator = setup_prometheus(app, app_version=__version__)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add X-Request-ID header to all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        # BaseHTTPMiddleware does not handle WebSocket upgrades
        if request.headers.get("upgrade", "").lower() == "websocket":
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = datetime.now(timezone.utc)

        clear_context()
        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers["X-Request-ID"] = request_id
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Duration: {duration:.3f}s - "
            f"Request-ID: {request_id}"
        )
        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID", "Idempotency-Key"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================


@app.exception_handler(ClaimError)
async def claim_error_handler(request: Request, exc: ClaimError) -> ORJSONResponse:
    """Translate claim errors to HTTP responses."""
    status_code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
    logger.warning(
        "claim_error",
        code=exc.code,
        message=exc.message,
        path=request.url.path,
    )
    return ORJSONResponse(status_code=status_code, content=exc.to_dict())


# =============================================================================
# Routes
# =============================================================================


app.include_router(checkin_router)
app.include_router(coins_router)
app.include_router(games_router)
app.include_router(events_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus a round trip to the ledger store clock."""
    services = getattr(app.state, "services", None)
    if services is None:
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "starting"},
        )
    now = await services.clock.now()
    return {
        "status": "healthy",
        "version": __version__,
        "ledgerBackend": settings.ledger_backend,
        "serverTime": now.isoformat(),
    }
