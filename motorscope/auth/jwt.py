"""
Local session-token inspection.

The orchestrator never verifies signatures (the remote API does that); it
only reads the ``exp`` claim to decide whether a cached token can be trusted
without a network call.
"""

import base64
import binascii
import json
import time

import structlog
from pydantic import ValidationError

from motorscope.auth.schemas import JwtPayload

logger = structlog.get_logger(__name__)

DEFAULT_LEEWAY_SECONDS = 60


def decode_jwt(token: str) -> JwtPayload | None:
    """
    Decode a JWT payload without verifying the signature.

    Returns:
        Parsed payload, or None when the token is malformed or lacks
        required claims.
    """
    parts = token.split(".")
    if len(parts) != 3:
        logger.warning("Invalid session token format")
        return None

    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(segment)
        return JwtPayload.model_validate(json.loads(raw))
    except (binascii.Error, ValueError, ValidationError) as e:
        logger.warning("Failed to decode session token", error=str(e))
        return None


def is_jwt_expired(
    token: str | JwtPayload,
    leeway_seconds: int = DEFAULT_LEEWAY_SECONDS,
    now: float | None = None,
) -> bool:
    """
    Check whether a token is expired, treating tokens that expire within
    ``leeway_seconds`` as already expired. Undecodable tokens count as expired.
    """
    payload = decode_jwt(token) if isinstance(token, str) else token
    if payload is None:
        return True

    current = int(now if now is not None else time.time())
    return current >= payload.exp - leeway_seconds


def get_jwt_time_remaining(token: str | JwtPayload, now: float | None = None) -> int:
    """Seconds until the token expires (0 if expired or undecodable)."""
    payload = decode_jwt(token) if isinstance(token, str) else token
    if payload is None:
        return 0
    current = int(now if now is not None else time.time())
    return max(0, payload.exp - current)
