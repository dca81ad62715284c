"""Session management: credential store, identity broker and session state machine."""

from motorscope.auth.broker import IdentityBroker, OAuthDeviceBroker
from motorscope.auth.config import AuthConfig
from motorscope.auth.errors import (
    AuthError,
    BrokerError,
    ExchangeRejectedError,
    LoginFailedError,
    NetworkError,
)
from motorscope.auth.schemas import Identity, Session, SessionStatus, StoredSession
from motorscope.auth.session import SessionStateMachine
from motorscope.auth.storage import CredentialStore

__all__ = [
    "AuthConfig",
    "AuthError",
    "BrokerError",
    "CredentialStore",
    "ExchangeRejectedError",
    "Identity",
    "IdentityBroker",
    "LoginFailedError",
    "NetworkError",
    "OAuthDeviceBroker",
    "Session",
    "SessionStateMachine",
    "SessionStatus",
    "StoredSession",
]
