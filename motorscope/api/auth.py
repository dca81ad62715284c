"""
Local API keys for the control surface.

Keys come from the comma-separated ``API_KEYS`` setting. With none
configured every caller is accepted, which is the single-user default.
"""

import hmac

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from motorscope.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)

OPEN_ACCESS = "open-access"


def configured_keys() -> list[str]:
    raw = get_settings().api_keys or ""
    return [key.strip() for key in raw.split(",") if key.strip()]


def is_valid_api_key(api_key: str | None) -> bool:
    keys = configured_keys()
    if not keys:
        return True
    if not api_key:
        return False
    return any(hmac.compare_digest(api_key.encode(), key.encode()) for key in keys)


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """FastAPI dependency: reject requests without a configured X-API-KEY (401)."""
    if not configured_keys():
        return OPEN_ACCESS
    if not is_valid_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-API-KEY header",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return api_key
