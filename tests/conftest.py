"""Pytest fixtures for motorscope tests."""

import base64
import json
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from motorscope.auth.schemas import Identity
from motorscope.config.settings import Settings
from motorscope.listings.schemas import Listing
from motorscope.storage import MemoryKeyValueStore

FIXED_NOW = 1_760_000_000  # 2025-10-09T08:53:20Z


def _b64(data: dict[str, Any]) -> str:
    raw = json.dumps(data).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def make_jwt(exp: int, iat: int | None = None, **claims: Any) -> str:
    """Build an unsigned session token with the given expiry."""
    payload = {
        "userId": "user_1",
        "email": "driver@example.com",
        "iat": iat if iat is not None else exp - 3600,
        "exp": exp,
        **claims,
    }
    return f"{_b64({'alg': 'HS256', 'typ': 'JWT'})}.{_b64(payload)}.signature"


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_url="redis://localhost:6379/1",
        backend_base_url="http://backend.test",
    )


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def now() -> float:
    return float(FIXED_NOW)


@pytest.fixture
def jwt_factory() -> Callable[..., str]:
    return make_jwt


@pytest.fixture
def valid_token() -> str:
    """Session token valid for another hour at FIXED_NOW."""
    return make_jwt(exp=FIXED_NOW + 3600)


@pytest.fixture
def expired_token() -> str:
    """Session token that expired a minute before FIXED_NOW."""
    return make_jwt(exp=FIXED_NOW - 60)


@pytest.fixture
def identity() -> Identity:
    return Identity(id="user_1", email="driver@example.com", display_name="Test Driver")


def make_listing(listing_id: str = "vin_001", **kwargs: Any) -> Listing:
    """Create a Listing with sensible defaults."""
    data: dict[str, Any] = {
        "id": listing_id,
        "title": kwargs.pop("title", f"Listing {listing_id}"),
        "source": {
            "platform": "otomoto.pl",
            "url": kwargs.pop("url", f"https://www.otomoto.pl/oferta/{listing_id}"),
        },
        "currentPrice": kwargs.pop("current_price", 50000),
        "currency": kwargs.pop("currency", "PLN"),
        "status": kwargs.pop("status", "ACTIVE"),
        "lastSeenAt": kwargs.pop(
            "last_seen_at", datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc).isoformat()
        ),
        "lastRefreshStatus": kwargs.pop("last_refresh_status", "success"),
    }
    data.update(kwargs)
    return Listing.model_validate(data)


@pytest.fixture
def listing_factory() -> Callable[..., Listing]:
    return make_listing
