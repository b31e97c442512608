"""
Enumerations for retry decisions.

Closed taxonomies: the backoff policy and orchestrator key their behaviour
off these members, and module-level tables there are checked for full
coverage at import time.
"""

from enum import Enum


class FailureClass(str, Enum):
    """
    Classification of a single failed attempt.

    Derived once per attempt from a raised transport/timeout error, an HTTP
    status code, or a ClassificationResult.
    """

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    HTTP_CLIENT_ERROR = "http_client_error"
    HTTP_SERVER_ERROR = "http_server_error"
    RATE_LIMITED = "rate_limited"
    VALIDATION_FAILED = "validation_failed"
    UNRECOVERABLE = "unrecoverable"

    @property
    def retryable(self) -> bool:
        return self not in (FailureClass.HTTP_CLIENT_ERROR, FailureClass.UNRECOVERABLE)


class ReasonCode(str, Enum):
    """Why a 2xx response body was judged unusable."""

    NONE = "none"
    TOO_SHORT = "too_short"
    EMPTY = "empty"
    PROHIBITED_CONTENT = "prohibited_content"
    ABRUPT_STOP = "abrupt_stop"
    STREAM_STALLED = "stream_stalled"
    RATE_LIMITED = "rate_limited"

    @property
    def is_moderation(self) -> bool:
        """True if the provider withheld output for policy reasons."""
        return self is ReasonCode.PROHIBITED_CONTENT
