"""
Terminal-failure notification sink.

The orchestrator calls ``notify`` once per call that ends in failure. The
sink is best-effort: the core only needs somewhere to send the signal.
"""

from typing import Optional, Protocol

import structlog

from fetch_retry.models.responses import ResponseMeta
from fetch_retry.exceptions import (
    RequestCancelled,
    TimeoutFailure,
    TransportFailure,
)

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    """Receives (error-or-None, last-response-metadata-or-None) on terminal failure."""

    def notify(
        self,
        error: Optional[BaseException],
        response_meta: Optional[ResponseMeta],
    ) -> None:
        ...


def describe_failure(
    error: Optional[BaseException],
    response_meta: Optional[ResponseMeta],
) -> str:
    """User-facing one-line summary of a terminal failure."""
    if response_meta is not None and not 200 <= response_meta.status_code < 300:
        status = response_meta.status_code
        if status == 429:
            return "Rate limited (429): Too many requests"
        if status >= 500:
            return f"Server error ({status}): {response_meta.reason_phrase}"
        if status == 403:
            return "Forbidden (403): Access denied"
        return f"HTTP {status}: {response_meta.reason_phrase}"

    if isinstance(error, TimeoutFailure):
        return "Timeout: attempt exceeded its time limit"
    if isinstance(error, RequestCancelled):
        return "Request aborted"
    if isinstance(error, TransportFailure):
        return f"Network error: {error.message}"
    if error is not None:
        return f"Request failed: {error}"
    return "Request failed after all retries"


class LogNotifier:
    """Default sink: emits the failure summary as an error log event."""

    def notify(
        self,
        error: Optional[BaseException],
        response_meta: Optional[ResponseMeta],
    ) -> None:
        logger.error(
            describe_failure(error, response_meta),
            error_type=type(error).__name__ if error is not None else None,
            status_code=response_meta.status_code if response_meta is not None else None,
            url=response_meta.url if response_meta is not None else None,
        )
