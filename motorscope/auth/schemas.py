"""
Authentication records.

``StoredSession`` is the persisted credential record; ``Session`` is the
in-memory state owned by the session state machine. Observers only ever
receive copies of ``Session``.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle states of the session state machine."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"

    @property
    def broadcast_value(self) -> str:
        """Status string sent in AUTH_STATE_CHANGED notifications."""
        return "logged_in" if self is SessionStatus.AUTHENTICATED else "logged_out"


class Identity(BaseModel):
    """User profile returned by the remote API on a successful exchange."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    email: str
    display_name: str | None = Field(default=None, alias="displayName")


class StoredSession(BaseModel):
    """Credential Store record: session token, identity and when it was written."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    user: Identity
    stored_at: datetime = Field(default_factory=_utc_now, alias="storedAt")


class JwtPayload(BaseModel):
    """Claims the orchestrator reads from a session token (signature is not checked)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    email: str
    iat: int
    exp: int
    jti: str | None = None


@dataclass
class Session:
    """
    Current session.

    Invariant: ``status == AUTHENTICATED`` implies ``session_token`` is set and
    was valid as of the last check.
    """

    status: SessionStatus = SessionStatus.UNAUTHENTICATED
    session_token: str | None = None
    identity: Identity | None = None
    issued_at: datetime | None = None

    @classmethod
    def from_stored(cls, stored: StoredSession) -> "Session":
        return cls(
            status=SessionStatus.AUTHENTICATED,
            session_token=stored.token,
            identity=stored.user,
            issued_at=stored.stored_at,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED

    def copy(self) -> "Session":
        return replace(
            self,
            identity=self.identity.model_copy() if self.identity else None,
        )

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary (token omitted)."""
        return {
            "status": self.status.value,
            "identity": self.identity.model_dump(by_alias=True) if self.identity else None,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
        }
