"""Request token generation.

A request token identifies one claim attempt. It is written into every record
the attempt touches, so that a later read can tell which writer won.
"""

import re
import time
from uuid import uuid4

_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_.:#-]{8,128}$")


def new_request_token() -> str:
    """Generate a globally unique token: nanosecond time + random suffix."""
    return f"{time.time_ns()}-{uuid4().hex[:16]}"


def is_valid_request_token(token: str) -> bool:
    """Client supplied tokens must be printable and reasonably sized."""
    return bool(_TOKEN_PATTERN.match(token))
