"""
Backoff policy: how long to wait before the next attempt.

Different failure causes recover on different schedules, so the delay is
the maximum of several floors, clamped to a ceiling:

    1. Server hint (Retry-After), capped at retry_after_cap_ms
    2. Rate-limit track: rate_limit_delay_ms * 1.5 ** attempt
    3. Short-response track: short_response_delay_ms (too_short/empty/stalled)
    4. Baseline track: retry_delay_ms * 1.2 ** attempt (always applied)

    delay = min(max(floors), max_delay_ms)
"""

import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional

import httpx
import structlog

from fetch_retry.config import RetryConfig
from fetch_retry.models.enums import FailureClass, ReasonCode

logger = structlog.get_logger(__name__)

RATE_LIMIT_GROWTH = 1.5
BASELINE_GROWTH = 1.2

# Which extra floor each failure class contributes on top of the baseline.
# None means baseline only. Every FailureClass must appear.
_CLASS_TRACKS: dict[FailureClass, Optional[str]] = {
    FailureClass.TRANSPORT: None,
    FailureClass.TIMEOUT: None,
    FailureClass.HTTP_CLIENT_ERROR: None,
    FailureClass.HTTP_SERVER_ERROR: None,
    FailureClass.RATE_LIMITED: "rate_limit",
    FailureClass.VALIDATION_FAILED: "validation",
    FailureClass.UNRECOVERABLE: None,
}

# Extra floor for validation failures, keyed by reason. Every ReasonCode must appear.
_REASON_TRACKS: dict[ReasonCode, Optional[str]] = {
    ReasonCode.NONE: None,
    ReasonCode.TOO_SHORT: "short_response",
    ReasonCode.EMPTY: "short_response",
    ReasonCode.STREAM_STALLED: "short_response",
    ReasonCode.PROHIBITED_CONTENT: None,
    ReasonCode.ABRUPT_STOP: None,
    ReasonCode.RATE_LIMITED: "rate_limit",
}

_missing = (set(FailureClass) - set(_CLASS_TRACKS)) | (set(ReasonCode) - set(_REASON_TRACKS))
if _missing:
    raise RuntimeError(f"Backoff tracks missing for: {sorted(m.value for m in _missing)}")


class BackoffPolicy:
    """
    Pure delay computation over a RetryConfig snapshot.

    Attributes:
        config: Retry configuration snapshot for the current call
    """

    def __init__(self, config: RetryConfig):
        self.config = config

    def compute_delay(
        self,
        failure_class: FailureClass,
        attempt_index: int,
        server_hint_seconds: Optional[float] = None,
        reason: ReasonCode = ReasonCode.NONE,
    ) -> float:
        """
        Compute the wait before the next attempt.

        Args:
            failure_class: Classification of the attempt that just failed
            attempt_index: 0-based index of the attempt that just failed
            server_hint_seconds: Retry-After value, if the server sent one
            reason: Validation reason when failure_class is VALIDATION_FAILED

        Returns:
            Delay in milliseconds, within [retry_delay_ms, max_delay_ms]
        """
        if attempt_index < 0:
            raise ValueError("attempt_index must be >= 0")

        cfg = self.config
        floors = [cfg.retry_delay_ms * BASELINE_GROWTH ** attempt_index]

        if server_hint_seconds is not None and server_hint_seconds > 0:
            floors.append(min(server_hint_seconds * 1000.0, float(cfg.retry_after_cap_ms)))

        tracks = {_CLASS_TRACKS[failure_class]}
        if failure_class is FailureClass.VALIDATION_FAILED:
            tracks.add(_REASON_TRACKS[reason])

        if "rate_limit" in tracks:
            floors.append(cfg.rate_limit_delay_ms * RATE_LIMIT_GROWTH ** attempt_index)
        if "short_response" in tracks:
            floors.append(float(cfg.short_response_delay_ms))

        delay = min(max(floors), float(cfg.max_delay_ms))

        logger.debug(
            "Computed backoff delay",
            failure_class=failure_class.value,
            reason=reason.value,
            attempt_index=attempt_index,
            server_hint_seconds=server_hint_seconds,
            delay_ms=round(delay, 1),
        )
        return delay


def parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("5") and HTTP-date forms. Absent, negative or
    unparseable values yield None.
    """
    retry_after = httpx.Headers(headers).get("Retry-After")
    if not retry_after:
        return None

    try:
        seconds = float(retry_after)
    except ValueError:
        pass
    else:
        if seconds > 0.0 and math.isfinite(seconds):
            return seconds
        return None

    try:
        target_time = parsedate_to_datetime(retry_after)
    except (TypeError, ValueError):
        return None

    if target_time.tzinfo is None:
        target_time = target_time.replace(tzinfo=timezone.utc)

    delta = (target_time - datetime.now(timezone.utc)).total_seconds()
    return delta if delta > 0 else None
