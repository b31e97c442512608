"""
Failure taxonomy for the retry middleware.

Every failure the orchestrator can surface to a caller is one of these.
Retryable classes are absorbed by the orchestrator until the attempt
ceiling; the last one observed is then raised verbatim.
"""

from typing import TYPE_CHECKING, Any, Optional

from fetch_retry.models.enums import FailureClass, ReasonCode

if TYPE_CHECKING:
    import httpx

    from fetch_retry.models.responses import ResponseMeta


class RetryMiddlewareError(Exception):
    """
    Base exception for all retry middleware failures.

    Attributes:
        message: Human-readable description
        details: Structured data for logging/metrics
    """

    failure_class: Optional[FailureClass] = None

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class TransportFailure(RetryMiddlewareError):
    """
    Network-level failure: connection refused, DNS, reset, protocol error.

    Retryable with the generic backoff track.
    """

    failure_class = FailureClass.TRANSPORT


class TimeoutFailure(TransportFailure):
    """
    An attempt exceeded its per-attempt budget.

    Separate from caller cancellation: a timeout is internally generated
    and retryable, a caller cancel is terminal.
    """

    failure_class = FailureClass.TIMEOUT


class HttpStatusFailure(RetryMiddlewareError):
    """Base for failures derived from a non-2xx status code."""

    def __init__(
        self,
        message: str,
        response_meta: "ResponseMeta",
        details: dict[str, Any] | None = None,
        response: "httpx.Response | None" = None,
    ):
        details = dict(details or {})
        details.setdefault("status", response_meta.status_code)
        super().__init__(message, details)
        self.response_meta = response_meta
        self.response = response

    @property
    def status_code(self) -> int:
        return self.response_meta.status_code


class HttpClientFailure(HttpStatusFailure):
    """
    4xx other than 429. Never retried; the unread response is kept in
    ``response`` so it can be handed back to the caller as-is.
    """

    failure_class = FailureClass.HTTP_CLIENT_ERROR


class HttpServerFailure(HttpStatusFailure):
    """5xx. Retryable with the generic backoff track."""

    failure_class = FailureClass.HTTP_SERVER_ERROR


class RateLimited(HttpStatusFailure):
    """
    429 Too Many Requests.

    Retryable with its own exponential track; honours Retry-After.
    """

    failure_class = FailureClass.RATE_LIMITED

    def __init__(
        self,
        message: str,
        response_meta: "ResponseMeta",
        retry_after_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, response_meta, details)
        self.retry_after_seconds = retry_after_seconds


class ValidationFailure(RetryMiddlewareError):
    """
    A 2xx response whose body is semantically unusable.

    Attributes:
        reason: Why the body was rejected
        response: The buffered response, still readable by the caller
    """

    failure_class = FailureClass.VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        reason: ReasonCode,
        response: "httpx.Response | None" = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        details.setdefault("reason", reason.value)
        super().__init__(message, details)
        self.reason = reason
        self.response = response


class UnrecoverableFailure(RetryMiddlewareError):
    """
    The payload mutation strategy gave up on this request.

    Raised chained (``raise ... from``) to the last observed failure, which
    is also exposed as ``last_error``.
    """

    failure_class = FailureClass.UNRECOVERABLE

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.__cause__


class RequestCancelled(RetryMiddlewareError):
    """
    The caller's cancellation token fired.

    Terminal: raised immediately, never retried and never notified.
    """


class StreamStalled(RetryMiddlewareError):
    """
    A response body stopped producing data for longer than the inactivity
    window. Converted by the orchestrator into ReasonCode.STREAM_STALLED.
    """
