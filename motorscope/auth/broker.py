"""
Identity broker: source of third-party access tokens.

The session state machine only depends on the ``IdentityBroker`` protocol.
``OAuthDeviceBroker`` implements it against an OAuth 2.0 provider:

- silent: cached access token, else a refresh-token grant, else None
- interactive: device authorization grant (user enters a code in a browser)
- remove_cached_token: forget the access token but keep consent
- revoke: revoke consent at the provider and forget everything
"""

import asyncio
import time
from typing import Any, Callable, Protocol

import httpx
import structlog
from pydantic import BaseModel

from motorscope.auth.config import AuthConfig
from motorscope.auth.errors import BrokerError
from motorscope.storage import KeyValueStore

logger = structlog.get_logger(__name__)

BROKER_TOKEN_KEY = "broker_token"
DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"

# Access tokens expiring within this window are not handed out
EXPIRY_MARGIN_SECONDS = 60


class IdentityBroker(Protocol):
    """Contract for obtaining third-party tokens."""

    async def get_token(self, interactive: bool) -> str | None:
        """Return an access token, or None if one cannot be had silently."""
        ...

    async def remove_cached_token(self, token: str | None = None) -> None:
        """Forget a cached access token without revoking consent."""
        ...

    async def revoke(self) -> None:
        """Revoke consent at the identity provider."""
        ...


class CachedToken(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None

    def is_fresh(self, now: float) -> bool:
        if self.expires_at is None:
            return True
        return now < self.expires_at - EXPIRY_MARGIN_SECONDS


class DeviceCode(BaseModel):
    device_code: str
    user_code: str
    verification_url: str
    expires_in: int = 1800
    interval: int = 5


def _log_user_code(code: DeviceCode) -> None:
    logger.warning(
        "Sign-in required",
        verification_url=code.verification_url,
        user_code=code.user_code,
    )


class OAuthDeviceBroker:
    """
    OAuth 2.0 identity broker using the device authorization grant.

    Tokens are cached in the key-value store so silent renewal survives a
    process restart.

    Usage:
        broker = OAuthDeviceBroker(store)
        token = await broker.get_token(interactive=False)
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: AuthConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        on_user_code: Callable[[DeviceCode], None] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._config = config or AuthConfig()
        self._http = http_client or httpx.AsyncClient(timeout=30.0)
        self._on_user_code = on_user_code or _log_user_code
        self._clock = clock

    async def close(self) -> None:
        await self._http.aclose()

    async def get_token(self, interactive: bool) -> str | None:
        cached = await self._load()
        if cached and cached.is_fresh(self._clock()):
            return cached.access_token

        if cached and cached.refresh_token:
            refreshed = await self._refresh(cached.refresh_token)
            if refreshed:
                return refreshed.access_token

        if not interactive:
            return None

        token = await self._device_flow()
        return token.access_token

    async def remove_cached_token(self, token: str | None = None) -> None:
        cached = await self._load()
        if cached is None:
            return
        if token is not None and cached.access_token != token:
            return

        if cached.refresh_token:
            # Keep the refresh token so silent sign-in still works afterwards
            stale = CachedToken(access_token="", refresh_token=cached.refresh_token, expires_at=0)
            await self._store.set(BROKER_TOKEN_KEY, stale.model_dump_json())
        else:
            await self._store.delete(BROKER_TOKEN_KEY)
        logger.debug("Removed cached identity token")

    async def revoke(self) -> None:
        cached = await self._load()
        await self._store.delete(BROKER_TOKEN_KEY)
        if cached is None:
            return

        token = cached.refresh_token or cached.access_token
        try:
            response = await self._http.post(
                self._config.oauth_revoke_url,
                data={"token": token},
            )
            if response.status_code >= 400:
                logger.warning("Token revocation refused", status_code=response.status_code)
            else:
                logger.info("Revoked identity provider consent")
        except httpx.HTTPError as e:
            logger.warning("Token revocation failed", error=str(e))

    async def _load(self) -> CachedToken | None:
        raw = await self._store.get(BROKER_TOKEN_KEY)
        if raw is None:
            return None
        return CachedToken.model_validate_json(raw)

    async def _save(self, payload: dict[str, Any], previous_refresh: str | None = None) -> CachedToken:
        expires_in = payload.get("expires_in")
        token = CachedToken(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous_refresh,
            expires_at=self._clock() + float(expires_in) if expires_in else None,
        )
        await self._store.set(BROKER_TOKEN_KEY, token.model_dump_json())
        return token

    def _client_params(self) -> dict[str, str]:
        if not self._config.oauth_client_id:
            raise BrokerError("OAuth client id is not configured (AUTH_OAUTH_CLIENT_ID)")
        params = {"client_id": self._config.oauth_client_id}
        if self._config.oauth_client_secret:
            params["client_secret"] = self._config.oauth_client_secret
        return params

    async def _refresh(self, refresh_token: str) -> CachedToken | None:
        """Refresh-token grant. Any failure yields None."""
        if not self._config.oauth_client_id:
            return None
        try:
            response = await self._http.post(
                self._config.oauth_token_url,
                data={
                    **self._client_params(),
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                },
            )
        except httpx.HTTPError as e:
            logger.warning("Silent token refresh failed", error=str(e))
            return None

        if response.status_code != 200:
            logger.info("Silent token refresh refused", status_code=response.status_code)
            return None
        return await self._save(response.json(), previous_refresh=refresh_token)

    async def _device_flow(self) -> CachedToken:
        """Device authorization grant; raises BrokerError on any failure."""
        params = self._client_params()
        try:
            response = await self._http.post(
                self._config.oauth_device_code_url,
                data={**params, "scope": self._config.oauth_scopes},
            )
        except httpx.HTTPError as e:
            raise BrokerError(f"Identity provider unavailable: {e}") from e

        if response.status_code != 200:
            raise BrokerError(f"Device code request failed with status {response.status_code}")

        body = response.json()
        body.setdefault("verification_url", body.get("verification_uri", ""))
        code = DeviceCode.model_validate(body)
        self._on_user_code(code)

        deadline = self._clock() + min(code.expires_in, self._config.oauth_login_timeout_seconds)
        interval = code.interval

        while self._clock() < deadline:
            await asyncio.sleep(interval)
            try:
                response = await self._http.post(
                    self._config.oauth_token_url,
                    data={
                        **params,
                        "grant_type": DEVICE_CODE_GRANT,
                        "device_code": code.device_code,
                    },
                )
            except httpx.HTTPError as e:
                raise BrokerError(f"Identity provider unavailable: {e}") from e

            if response.status_code == 200:
                logger.info("Device authorization completed")
                return await self._save(response.json())

            error = response.json().get("error", "")
            if error == "authorization_pending":
                continue
            if error == "slow_down":
                interval += 5
                continue
            if error == "access_denied":
                raise BrokerError("User declined the sign-in request")
            raise BrokerError(f"Device authorization failed: {error or response.status_code}")

        raise BrokerError("Timed out waiting for the user to sign in")
