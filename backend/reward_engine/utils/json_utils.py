"""JSON utilities using orjson.

Ledger documents are stored as JSON; decimals travel as strings so balances
never pass through a float.

Usage:
    from reward_engine.utils.json_utils import json_dumps, json_loads, ORJSONResponse
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import orjson
from fastapi.responses import JSONResponse


def _default_serializer(obj: Any) -> Any:
    """Custom serializer for types not natively supported by orjson."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return obj.decode("utf-8")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def json_dumps(data: Any) -> str:
    """Serialize data to a JSON string."""
    return orjson.dumps(
        data, default=_default_serializer, option=orjson.OPT_UTC_Z
    ).decode("utf-8")


def json_dumps_bytes(data: Any) -> bytes:
    """Serialize data to JSON bytes (for Redis values)."""
    return orjson.dumps(data, default=_default_serializer, option=orjson.OPT_UTC_Z)


def json_loads(data: str | bytes) -> Any:
    """Deserialize a JSON string or bytes."""
    return orjson.loads(data)


class ORJSONResponse(JSONResponse):
    """FastAPI response class using orjson."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return json_dumps_bytes(content)
