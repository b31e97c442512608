"""
Per-call retry state.

A RetryContext is created when a call starts, mutated only by the
orchestrator, and discarded when the call resolves. It is never shared
between calls.
"""

from dataclasses import dataclass, field
from typing import Optional

import httpx

from fetch_retry.models.enums import FailureClass, ReasonCode
from fetch_retry.models.responses import ResponseMeta


@dataclass
class RetryContext:
    """
    Mutable state of one in-flight call.

    Attributes:
        request: Original request as issued by the caller
        body: Current request body (replaced by payload mutation)
        max_retries: Highest attempt index; total attempts = max_retries + 1
        attempt_index: 0-based attempt counter, never decreases
        content_filter_retry: Previous attempt was withheld by moderation
        mutation_count: Moderation-driven mutations applied so far
        last_error: Last failure observed
        last_response_meta: Status/headers of the last response observed
        server_hint_seconds: Retry-After of the current attempt's response
        delays_ms: Backoff delays actually waited, in order
    """

    request: httpx.Request
    body: bytes
    max_retries: int
    attempt_index: int = 0
    content_filter_retry: bool = False
    mutation_count: int = 0
    last_error: Optional[BaseException] = None
    last_response_meta: Optional[ResponseMeta] = None
    last_failure_class: Optional[FailureClass] = None
    last_reason: ReasonCode = ReasonCode.NONE
    server_hint_seconds: Optional[float] = None
    delays_ms: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    @property
    def url(self) -> str:
        return str(self.request.url)

    @property
    def attempt_number(self) -> int:
        """1-based attempt number for log messages."""
        return self.attempt_index + 1

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def exhausted(self) -> bool:
        return self.attempt_index >= self.max_retries

    def advance(self) -> None:
        """Move to the next attempt."""
        if self.exhausted:
            raise RuntimeError(
                f"attempt_index {self.attempt_index} already at max_retries {self.max_retries}"
            )
        self.attempt_index += 1

    def record_failure(
        self,
        error: BaseException,
        failure_class: FailureClass,
        reason: ReasonCode = ReasonCode.NONE,
    ) -> None:
        self.last_error = error
        self.last_failure_class = failure_class
        self.last_reason = reason
        self.content_filter_retry = reason.is_moderation
