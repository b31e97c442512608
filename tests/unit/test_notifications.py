"""
Unit tests for failure notification messages.
"""

from unittest.mock import patch

import pytest

from fetch_retry.exceptions import (
    HttpServerFailure,
    RequestCancelled,
    TimeoutFailure,
    TransportFailure,
    ValidationFailure,
)
from fetch_retry.models.enums import ReasonCode
from fetch_retry.models.responses import ResponseMeta
from fetch_retry.notifications import LogNotifier, describe_failure


def create_meta(status_code: int, reason_phrase: str = "") -> ResponseMeta:
    return ResponseMeta(status_code=status_code, reason_phrase=reason_phrase, url="https://api.example.com/generate")


class TestDescribeFailure:
    def test_rate_limited(self):
        assert describe_failure(None, create_meta(429)) == "Rate limited (429): Too many requests"

    def test_server_error(self):
        meta = create_meta(503, "Service Unavailable")

        message = describe_failure(HttpServerFailure("Server error: 503", meta), meta)

        assert message == "Server error (503): Service Unavailable"

    def test_forbidden(self):
        assert describe_failure(None, create_meta(403, "Forbidden")) == "Forbidden (403): Access denied"

    def test_other_client_error(self):
        assert describe_failure(None, create_meta(404, "Not Found")) == "HTTP 404: Not Found"

    def test_timeout(self):
        assert describe_failure(TimeoutFailure("slow"), None) == "Timeout: attempt exceeded its time limit"

    def test_cancelled(self):
        assert describe_failure(RequestCancelled("stop"), None) == "Request aborted"

    def test_network_error(self):
        assert describe_failure(TransportFailure("Connection refused"), None) == "Network error: Connection refused"

    def test_validation_failure_after_2xx(self):
        error = ValidationFailure("Response rejected: too_short", ReasonCode.TOO_SHORT)

        message = describe_failure(error, create_meta(200, "OK"))

        assert message.startswith("Request failed: Response rejected: too_short")

    def test_nothing_known(self):
        assert describe_failure(None, None) == "Request failed after all retries"


class TestLogNotifier:
    def test_logs_error_event(self):
        meta = create_meta(502, "Bad Gateway")

        with patch("fetch_retry.notifications.logger") as mock_logger:
            LogNotifier().notify(HttpServerFailure("Server error: 502", meta), meta)

        mock_logger.error.assert_called_once()
        args, kwargs = mock_logger.error.call_args
        assert args[0] == "Server error (502): Bad Gateway"
        assert kwargs["status_code"] == 502
        assert kwargs["error_type"] == "HttpServerFailure"

    def test_handles_missing_error_and_meta(self):
        with patch("fetch_retry.notifications.logger") as mock_logger:
            LogNotifier().notify(None, None)

        kwargs = mock_logger.error.call_args.kwargs
        assert kwargs["status_code"] is None
        assert kwargs["error_type"] is None


@pytest.mark.parametrize("status_code", [500, 502, 504])
def test_server_error_family(status_code):
    assert describe_failure(None, create_meta(status_code, "X")).startswith(f"Server error ({status_code})")
