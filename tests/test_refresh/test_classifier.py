"""Tests for failure classification."""

import httpx
import pytest

from motorscope.auth.errors import NetworkError
from motorscope.listings.errors import ExtractionError, ItemRefreshError
from motorscope.refresh.classifier import (
    ErrorKind,
    classify,
    is_network_error,
    is_rate_limit_error,
)


class TestIsRateLimitError:
    @pytest.mark.parametrize(
        "message",
        [
            "Extraction failed with status 429: Too Many Requests",
            "Rate limit reached for requests",
            "QUOTA EXCEEDED for project",
            "Resource exhausted",
        ],
    )
    def test_markers(self, message):
        assert is_rate_limit_error(message)
        assert is_rate_limit_error(ItemRefreshError(message))

    def test_status_code(self):
        assert is_rate_limit_error(ExtractionError("throttled", status_code=429))

    @pytest.mark.parametrize("message", ["HTTP 500", "Listing not found", ""])
    def test_other_errors(self, message):
        assert not is_rate_limit_error(ItemRefreshError(message, status_code=500))


class TestClassify:
    def test_rate_limited(self):
        assert classify(ExtractionError("status 429: slow down")) is ErrorKind.RATE_LIMITED

    @pytest.mark.parametrize("error", [NetworkError("reset"), httpx.ConnectError("refused")])
    def test_network_is_retry(self, error):
        assert is_network_error(error)
        assert classify(error) is ErrorKind.RETRY

    def test_everything_else_fatal(self):
        assert classify(ItemRefreshError("HTTP 503", status_code=503)) is ErrorKind.FATAL
        assert classify(ValueError("bad json")) is ErrorKind.FATAL
        assert classify("plain message") is ErrorKind.FATAL
