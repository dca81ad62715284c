"""
Rate-limit classifier.

One place decides what a failure means:
- rate_limited: the remote side is throttling us; stop the batch
- retry: transport failure; the login policy aborts on these
- fatal: anything else; recorded against the item and the batch continues
"""

from enum import Enum

import httpx

from motorscope.auth.errors import NetworkError

RATE_LIMIT_MARKERS = ("429", "rate limit", "quota exceeded", "resource exhausted")


class ErrorKind(str, Enum):
    RETRY = "retry"
    RATE_LIMITED = "rate_limited"
    FATAL = "fatal"


def is_rate_limit_error(error: BaseException | str) -> bool:
    """Check an error (or error message) for throttling markers or an HTTP 429 status."""
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def is_network_error(error: BaseException) -> bool:
    return isinstance(error, (NetworkError, httpx.TransportError))


def classify(error: BaseException | str) -> ErrorKind:
    if is_rate_limit_error(error):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, BaseException) and is_network_error(error):
        return ErrorKind.RETRY
    return ErrorKind.FATAL
