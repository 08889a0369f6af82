"""
Socket token verification, ingest key check and in-memory rate limiting.
"""
from __future__ import annotations

import hmac
import os
import time
from typing import Dict, Optional

from jose import JWTError, jwt

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
PROGRESS_INGEST_KEY = os.getenv("PROGRESS_INGEST_KEY")
INGEST_KEY_HEADER = "X-Progress-Key"


def decode_socket_token(token: str | None) -> Optional[str]:
    """
    Verify a signed token sent in a socket `auth` frame.
    Returns the user id it carries (`userId`, falling back to `sub`), or None if invalid.
    """
    if not JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set to authenticate progress sockets")
    if not token:
        return None
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

    user_id = claims.get("userId") or claims.get("sub")
    if user_id is None or user_id == "":
        return None
    return str(user_id)


def ingest_enabled() -> bool:
    return bool(PROGRESS_INGEST_KEY)


def validate_ingest_key(provided: str | None) -> bool:
    """Constant-time compare of the worker's key against PROGRESS_INGEST_KEY."""
    if not PROGRESS_INGEST_KEY or not provided:
        return False
    return hmac.compare_digest(PROGRESS_INGEST_KEY, provided)


# -------- Rate limiting (in-memory) --------
_rate_state: Dict[str, list[float]] = {}


def allow_request(key: str, limit: int = 5, window_seconds: int = 60) -> bool:
    """
    Simple sliding-window rate limit stored in memory.
    Returns True if under limit, False otherwise.
    """
    allowed, _ = allow_request_with_remaining(key, limit=limit, window_seconds=window_seconds)
    return allowed


def allow_request_with_remaining(key: str, limit: int = 5, window_seconds: int = 60) -> tuple[bool, int]:
    """
    Sliding-window rate limit with remaining-count feedback.
    Returns (allowed: bool, remaining_after: int).
    """
    now = time.time()
    window_start = now - window_seconds
    history = _rate_state.get(key, [])
    history = [t for t in history if t > window_start]
    if len(history) >= limit:
        _rate_state[key] = history
        return False, 0
    history.append(now)
    _rate_state[key] = history
    remaining_after = max(0, limit - len(history))
    return True, remaining_after


def reset_rate_limits() -> None:
    _rate_state.clear()


__all__ = [
    "INGEST_KEY_HEADER",
    "decode_socket_token",
    "ingest_enabled",
    "validate_ingest_key",
    "allow_request",
    "allow_request_with_remaining",
    "reset_rate_limits",
]
