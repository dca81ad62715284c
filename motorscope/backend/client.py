"""
Remote API client.

Wraps the listing-tracking backend:
- POST /auth/google   exchange a third-party token for a session token
- POST /auth/logout   invalidate a session token
- GET/POST /listings  read and write tracked listings
- GET/PUT /settings   user settings and the mirrored refresh schedule

The token exchange maps failures onto the auth error taxonomy (network vs.
rejection). Every other call raises ``BackendError``.
"""

from typing import Any

import httpx
import structlog

from motorscope.auth.errors import ExchangeRejectedError, NetworkError
from motorscope.auth.schemas import Identity
from motorscope.config.settings import get_settings
from motorscope.listings.schemas import Listing
from motorscope.refresh.schemas import UserSettings

logger = structlog.get_logger(__name__)

AUTH_EXCHANGE_PATH = "/auth/google"
AUTH_LOGOUT_PATH = "/auth/logout"
LISTINGS_PATH = "/listings"
SETTINGS_PATH = "/settings"


class BackendError(Exception):
    """Remote API call failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
        if message:
            return str(message)
    return f"Request failed: {response.status_code}"


class BackendClient:
    """
    Async client for the remote API.

    Example:
        async with BackendClient() as backend:
            token, user = await backend.exchange_token(access_token)
            listings = await backend.list_listings(token)
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.backend_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "BackendClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("BackendClient is not connected")
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        json_body: Any = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = await self._require_client().request(
                method, path, json=json_body, headers=headers
            )
        except httpx.TransportError as e:
            raise BackendError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise BackendError(
                _error_message(response),
                status_code=response.status_code,
                response_body=response.text,
            )
        return response

    async def exchange_token(self, access_token: str) -> tuple[str, Identity]:
        """
        Exchange a third-party access token for a session token.

        Raises:
            NetworkError: transport failure
            ExchangeRejectedError: the API answered with an error status
        """
        try:
            response = await self._require_client().post(
                AUTH_EXCHANGE_PATH, json={"accessToken": access_token}
            )
        except httpx.TransportError as e:
            raise NetworkError(f"Token exchange failed: {e}") from e

        if response.status_code >= 400:
            raise ExchangeRejectedError(
                _error_message(response), status_code=response.status_code
            )

        data = response.json()
        return data["token"], Identity.model_validate(data["user"])

    async def logout(self, token: str) -> None:
        await self._request("POST", AUTH_LOGOUT_PATH, token)

    async def list_listings(self, token: str) -> list[Listing]:
        response = await self._request("GET", LISTINGS_PATH, token)
        data = response.json()
        if isinstance(data, dict):
            data = data.get("listings", [])
        return [Listing.model_validate(item) for item in data]

    async def save_listing(self, token: str, listing: Listing) -> None:
        await self._request("POST", LISTINGS_PATH, token, json_body=listing.to_wire())

    async def get_user_settings(self, token: str) -> UserSettings:
        response = await self._request("GET", SETTINGS_PATH, token)
        return UserSettings.model_validate(response.json() or {})

    async def put_schedule(self, token: str, schedule: dict[str, Any]) -> None:
        """Mirror refresh schedule fields (lastRefreshTime, nextRefreshTime, lastRefreshCount)."""
        await self._request("PUT", SETTINGS_PATH, token, json_body=schedule)

    async def health_check(self) -> bool:
        try:
            response = await self._require_client().get("/healthz")
        except httpx.HTTPError as e:
            logger.warning("Backend health check failed", error=str(e))
            return False
        return response.status_code == 200
