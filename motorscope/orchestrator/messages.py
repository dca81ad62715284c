"""Message, alarm and broadcast vocabulary of the orchestrator."""

from enum import Enum
from typing import Any


class MessageType(str, Enum):
    TRIGGER_MANUAL_REFRESH = "TRIGGER_MANUAL_REFRESH"
    RESCHEDULE_ALARM = "RESCHEDULE_ALARM"
    CLEAR_REFRESH_ERRORS = "CLEAR_REFRESH_ERRORS"
    CHECK_AUTH = "CHECK_AUTH"
    TRY_SILENT_LOGIN = "TRY_SILENT_LOGIN"
    INITIALIZE_ALARM = "INITIALIZE_ALARM"
    REFRESH_LISTING = "REFRESH_LISTING"
    GET_TRACKED_URLS = "GET_TRACKED_URLS"


# Messages whose sender waits for a response body
REQUEST_RESPONSE_TYPES = frozenset({
    MessageType.TRIGGER_MANUAL_REFRESH,
    MessageType.REFRESH_LISTING,
    MessageType.GET_TRACKED_URLS,
})


class AlarmName(str, Enum):
    REFRESH = "refresh"
    AUTH_CHECK = "auth-check"


class BroadcastEvent(str, Enum):
    AUTH_STATE_CHANGED = "AUTH_STATE_CHANGED"
    REFRESH_STATUS_CHANGED = "REFRESH_STATUS_CHANGED"
    LISTING_UPDATED = "LISTING_UPDATED"


def parse_message_type(message: Any) -> MessageType | None:
    """Message type of a raw message, or None for missing/unknown types."""
    if not isinstance(message, dict):
        return None
    try:
        return MessageType(message.get("type"))
    except ValueError:
        return None
