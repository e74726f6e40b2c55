"""Prometheus metrics middleware and custom metrics.

Features:
- HTTP request metrics (latency, count, errors)
- Claim outcomes per record kind
- Code pool allocations and exhaustion
- Coin balance adjustments
- Ledger transaction conflicts and push channel connections
"""

from prometheus_client import Counter, Gauge, Info
from prometheus_fastapi_instrumentator import Instrumentator, metrics
from fastapi import FastAPI


# =============================================================================
# Custom Metrics
# =============================================================================

# Application info
APP_INFO = Info("reward_engine_app", "Application information")

# Claim metrics
CLAIMS_TOTAL = Counter(
    "reward_engine_claims_total",
    "Claim attempts by outcome",
    ["kind", "outcome"],  # kind: day, complete, coupon; outcome: committed, replayed, ...
)

ROLLBACKS_TOTAL = Counter(
    "reward_engine_rollbacks_total",
    "Compensating rollbacks by result",
    ["result"],  # restored, skipped
)

# Code pool metrics
CODES_ALLOCATED = Counter(
    "reward_engine_codes_allocated_total",
    "Codes handed out",
    ["slot_type"],  # day, complete, coupon
)

CODES_RELEASED = Counter(
    "reward_engine_codes_released_total",
    "Codes returned to their pool by compensation",
)

CODES_EXHAUSTED = Counter(
    "reward_engine_codes_exhausted_total",
    "Allocation attempts on an exhausted pool",
)

# Coin metrics
COIN_ADJUSTMENTS = Counter(
    "reward_engine_coin_adjustments_total",
    "Coin balance adjustments",
    ["direction", "outcome"],  # credit/debit; applied, replayed, rejected
)

# Ledger metrics
LEDGER_TRANSACTION_FAILURES = Counter(
    "reward_engine_ledger_transaction_failures_total",
    "Ledger transactions that exhausted retries or timed out",
    ["reason"],
)

# WebSocket metrics
WS_CONNECTIONS_TOTAL = Gauge(
    "reward_engine_ws_connections_total",
    "Total active push channel connections",
)


# =============================================================================
# Instrumentator Setup
# =============================================================================

def setup_prometheus(app: FastAPI, app_version: str = "1.0.0") -> Instrumentator:
    """Setup Prometheus metrics instrumentation.

    Args:
        app: FastAPI application instance
        app_version: Application version string

    Returns:
        Configured Instrumentator instance
    """
    APP_INFO.info({
        "version": app_version,
        "app_name": "reward-engine",
    })

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/health", "/metrics"],
        inprogress_name="reward_engine_http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.add(
        metrics.default(
            metric_namespace="reward_engine",
            metric_subsystem="http",
            latency_highr_buckets=(0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5),
        )
    )

    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint="/metrics", include_in_schema=True, tags=["Monitoring"])

    return instrumentator


# =============================================================================
# Metric Helper Functions
# =============================================================================

def record_claim(kind: str, outcome: str) -> None:
    """Record a claim outcome.

    Args:
        kind: "day", "complete" or "coupon"
        outcome: "committed", "replayed", or the error code of a failure
    """
    CLAIMS_TOTAL.labels(kind=kind, outcome=outcome).inc()


def record_rollback(restored: bool) -> None:
    ROLLBACKS_TOTAL.labels(result="restored" if restored else "skipped").inc()


def record_code_allocated(slot_id: str) -> None:
    """Record a code allocation; ``slot_id`` is e.g. "day-3" or "coupon-0"."""
    CODES_ALLOCATED.labels(slot_type=slot_id.split("-", 1)[0]).inc()


def record_code_released() -> None:
    CODES_RELEASED.inc()


def record_codes_exhausted() -> None:
    CODES_EXHAUSTED.inc()


def record_coin_adjustment(credit: bool, outcome: str) -> None:
    COIN_ADJUSTMENTS.labels(
        direction="credit" if credit else "debit", outcome=outcome
    ).inc()


def record_transaction_failure(reason: str) -> None:
    LEDGER_TRANSACTION_FAILURES.labels(reason=reason).inc()


def record_ws_connection(connected: bool) -> None:
    """Record push channel connection change."""
    if connected:
        WS_CONNECTIONS_TOTAL.inc()
    else:
        WS_CONNECTIONS_TOTAL.dec()
