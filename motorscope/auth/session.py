"""
Session state machine.

Owns the two-tier credential: a third-party access token from the identity
broker, exchanged at the remote API for a locally issued session token.

States:
    unauthenticated -> authenticating -> authenticated
    authenticated -(expiry)-> authenticating -> authenticated | unauthenticated

Collaborator failures are converted into typed outcomes here. The only
operation that raises is ``interactive_login``, whose caller needs to know
why sign-in failed.
"""

import asyncio
import inspect
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import structlog

from motorscope.auth.backoff import ExponentialBackoff
from motorscope.auth.broker import IdentityBroker
from motorscope.auth.config import AuthConfig
from motorscope.auth.errors import (
    BrokerError,
    ExchangeRejectedError,
    LoginFailedError,
)
from motorscope.auth.jwt import is_jwt_expired
from motorscope.auth.schemas import Session, SessionStatus, StoredSession
from motorscope.auth.storage import CredentialStore
from motorscope.observability.metrics import get_metrics
from motorscope.refresh.classifier import is_network_error

if TYPE_CHECKING:
    from motorscope.backend.client import BackendClient

logger = structlog.get_logger(__name__)

AUTH_STATE_CHANGED = "AUTH_STATE_CHANGED"

SessionObserver = Callable[[Session], Any]
Broadcast = Callable[[str, dict[str, Any]], Awaitable[None]]


class SessionStateMachine:
    """
    Login/logout lifecycle with silent renewal and interactive login.

    Usage:
        sessions = SessionStateMachine(store, broker, backend)
        session = await sessions.initialize()
        token = sessions.get_token()
    """

    def __init__(
        self,
        store: CredentialStore,
        broker: IdentityBroker,
        backend: "BackendClient",
        config: AuthConfig | None = None,
        broadcast: Broadcast | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._broker = broker
        self._backend = backend
        self._config = config or AuthConfig()
        self._broadcast = broadcast
        self._sleep = sleep
        self._clock = clock
        self._session = Session()
        self._observers: list[SessionObserver] = []
        self._metrics = get_metrics()

    @property
    def session(self) -> Session:
        """Copy of the current session."""
        return self._session.copy()

    @property
    def is_authenticated(self) -> bool:
        return self.get_token() is not None

    def add_observer(self, observer: SessionObserver) -> None:
        """Register a callback (sync or async) invoked with a Session copy on every transition."""
        self._observers.append(observer)

    def get_token(self) -> str | None:
        """Session token if authenticated and still valid locally, else None."""
        token = self._session.session_token
        if self._session.is_authenticated and token and self._is_locally_valid(token):
            return token
        return None

    async def initialize(self) -> Session:
        """
        Restore the session from the Credential Store.

        A locally valid token is trusted without any network call. An
        expired one gets exactly one silent renewal attempt.
        """
        stored = await self._store.get()
        if stored is None:
            await self._transition(Session())
            self._metrics.record_auth_event("initialized")
            return self.session

        if self._is_locally_valid(stored.token):
            await self._transition(Session.from_stored(stored))
            self._metrics.record_auth_event("initialized")
            logger.info("Session restored", user_id=stored.user.id)
            return self.session

        logger.info("Stored session expired, attempting silent renewal")
        await self._transition(
            Session(status=SessionStatus.AUTHENTICATING, identity=stored.user)
        )
        renewed = await self.silent_renew()
        if renewed is None:
            await self._store.clear()
            await self._transition(Session())
        return self.session

    async def silent_renew(self) -> StoredSession | None:
        """
        Non-interactive token refresh and exchange.

        Returns the new record on success, None on any failure. Never raises.
        """
        try:
            third_party = await self._broker.get_token(interactive=False)
        except Exception as e:
            logger.warning("Identity broker failed during silent renewal", error=str(e))
            third_party = None

        if not third_party:
            self._metrics.record_auth_event("renewal_failed")
            logger.info("No identity token available for silent renewal")
            return None

        try:
            session_token, identity = await self._backend.exchange_token(third_party)
        except ExchangeRejectedError as e:
            logger.warning("Token exchange rejected during silent renewal", error=str(e))
            await self._remove_cached_token(third_party)
            self._metrics.record_auth_event("renewal_failed")
            return None
        except Exception as e:
            logger.warning("Silent renewal failed", error=str(e))
            self._metrics.record_auth_event("renewal_failed")
            return None

        stored = await self._store.set(session_token, identity)
        await self._transition(Session.from_stored(stored))
        self._metrics.record_auth_event("renewed")
        logger.info("Session renewed silently", user_id=identity.id)
        return stored

    async def interactive_login(self) -> Session:
        """
        Interactive sign-in with retries.

        Up to ``login_max_attempts`` exchanges; rejections clear the cached
        third-party token and back off (base delay, then x multiplier).
        Network and broker failures abort on the spot.

        Raises:
            NetworkError: transport failure talking to the remote API
            BrokerError: the broker could not produce a token
            LoginFailedError: every attempt was rejected
        """
        await self._transition(Session(status=SessionStatus.AUTHENTICATING))
        backoff = ExponentialBackoff(
            base_delay=self._config.login_base_delay_seconds,
            max_delay=self._config.login_max_delay_seconds,
            multiplier=self._config.login_backoff_multiplier,
        )
        max_attempts = self._config.login_max_attempts
        last_error: ExchangeRejectedError | None = None

        for attempt in range(1, max_attempts + 1):
            third_party: str | None = None
            try:
                third_party = await self._broker.get_token(interactive=True)
                if not third_party:
                    raise BrokerError("Identity broker returned no token")
                await self._sleep(self._config.token_propagation_delay_seconds)
                session_token, identity = await self._backend.exchange_token(third_party)
            except ExchangeRejectedError as e:
                last_error = e
                logger.warning(
                    "Token exchange rejected",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                )
                await self._remove_cached_token(third_party)
                if attempt < max_attempts:
                    await self._sleep(backoff.next_delay())
                continue
            except Exception as e:
                if is_network_error(e) or isinstance(e, BrokerError):
                    logger.warning("Login aborted", attempt=attempt, error=str(e))
                else:
                    logger.exception("Unexpected login failure", attempt=attempt)
                await self._fail_login()
                raise

            stored = await self._store.set(session_token, identity)
            await self._transition(Session.from_stored(stored))
            self._metrics.record_auth_event("login")
            logger.info("Logged in", user_id=identity.id, attempts=attempt)
            await self._notify_auth_state()
            return self.session

        await self._fail_login()
        raise LoginFailedError(last_error, attempts=max_attempts) from last_error

    async def logout(self) -> None:
        """Invalidate the server session (best effort), drop cached tokens, clear the store."""
        stored = await self._store.get()
        token = stored.token if stored else self._session.session_token
        if token:
            try:
                await self._backend.logout(token)
            except Exception as e:
                logger.warning("Server logout failed", error=str(e))

        await self._remove_cached_token(None)
        await self._store.clear()
        await self._transition(Session())
        self._metrics.record_auth_event("logout")
        logger.info("Logged out")
        await self._notify_auth_state()

    async def disconnect(self) -> None:
        """Logout plus consent revocation at the identity provider."""
        await self.logout()
        try:
            await self._broker.revoke()
        except Exception as e:
            logger.warning("Consent revocation failed", error=str(e))
        self._metrics.record_auth_event("disconnect")

    async def check_auth(self) -> Session:
        """
        Periodic re-validation.

        No stored session or a locally valid one: nothing to do. Expired: one
        silent renewal, then an AUTH_STATE_CHANGED broadcast.
        """
        stored = await self._store.get()
        if stored is None:
            if self._session.status is not SessionStatus.UNAUTHENTICATED:
                await self._transition(Session())
            return self.session

        if self._is_locally_valid(stored.token):
            if not self._session.is_authenticated:
                await self._transition(Session.from_stored(stored))
            return self.session

        logger.info("Session expired, attempting silent renewal")
        await self._transition(
            Session(status=SessionStatus.AUTHENTICATING, identity=stored.user)
        )
        renewed = await self.silent_renew()
        if renewed is None:
            await self._store.clear()
            await self._transition(Session())
        await self._notify_auth_state()
        return self.session

    async def try_silent_login(self) -> bool:
        """Forced silent renewal. A failure leaves the current session untouched."""
        renewed = await self.silent_renew()
        if renewed is None:
            return False
        await self._notify_auth_state()
        return True

    def _is_locally_valid(self, token: str) -> bool:
        return not is_jwt_expired(
            token,
            leeway_seconds=self._config.jwt_leeway_seconds,
            now=self._clock(),
        )

    async def _fail_login(self) -> None:
        self._metrics.record_auth_event("login_failed")
        await self._transition(Session())

    async def _remove_cached_token(self, token: str | None) -> None:
        try:
            await self._broker.remove_cached_token(token)
        except Exception as e:
            logger.warning("Failed to remove cached identity token", error=str(e))

    async def _transition(self, session: Session) -> None:
        self._session = session
        for observer in self._observers:
            try:
                result = observer(session.copy())
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Session observer failed")

    async def _notify_auth_state(self) -> None:
        if self._broadcast is None:
            return
        await self._broadcast(
            AUTH_STATE_CHANGED,
            {"status": self._session.status.broadcast_value},
        )
