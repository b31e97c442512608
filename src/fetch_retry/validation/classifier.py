"""
Response validity classifier.

Inspects the body of a successful (2xx) response from a generation endpoint
and decides whether it is usable. Checks, each toggled by RetryConfig:

- Prohibited content: the provider withheld output for policy reasons
- Abrupt stop: normal termination marker, yet almost no text
- Empty / too short: fewer words than min_word_count
- Stream stall: the body stopped arriving (detected while buffering)

Unparseable bodies are never an error here: the classifier answers
"valid" whenever it cannot form an opinion.
"""

import json
from typing import Any, Optional

import structlog

from fetch_retry.config import RetryConfig
from fetch_retry.models.enums import ReasonCode
from fetch_retry.models.responses import ClassificationResult
from fetch_retry.validation.extraction import (
    ExtractedText,
    extract_from_event_stream,
    extract_from_json,
)

logger = structlog.get_logger(__name__)

# Fewer words than this with a normal stop marker counts as truncated.
ABRUPT_STOP_WORD_FLOOR = 3

NORMAL_STOP_REASONS = frozenset({"stop", "STOP", "end_turn"})

MODERATION_FINISH_REASONS = frozenset({
    "content_filter",
    "SAFETY",
    "PROHIBITED_CONTENT",
    "BLOCKLIST",
    "SPII",
})

_MODERATION_ERROR_MARKERS = ("content_filter", "content_policy", "moderation", "safety")
_RATE_LIMIT_ERROR_MARKERS = ("rate_limit", "resource_exhausted", "too_many_requests")


def _error_fields(data: dict) -> list[str]:
    """Lower-cased code/type/status strings of an embedded error object."""
    error = data.get("error")
    if not isinstance(error, dict):
        return []
    values = (error.get("code"), error.get("type"), error.get("status"))
    return [str(v).lower() for v in values if v is not None]


def _has_moderation_marker(payloads: list, finish_reason: Optional[str]) -> bool:
    if finish_reason in MODERATION_FINISH_REASONS:
        return True

    for data in payloads:
        if not isinstance(data, dict):
            continue
        feedback = data.get("promptFeedback")
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            return True
        if any(
            marker in field for field in _error_fields(data) for marker in _MODERATION_ERROR_MARKERS
        ):
            return True
    return False


def _has_rate_limit_marker(payloads: list) -> bool:
    for data in payloads:
        if not isinstance(data, dict):
            continue
        fields = _error_fields(data)
        if "429" in fields:
            return True
        if any(marker in field for field in fields for marker in _RATE_LIMIT_ERROR_MARKERS):
            return True
    return False


class ResponseValidityClassifier:
    """
    Semantic validity checks over generation response bodies.

    Stateless: the RetryConfig snapshot is passed on every call.
    """

    def classify(
        self,
        body: bytes,
        content_type: str,
        url: str,
        config: RetryConfig,
    ) -> ClassificationResult:
        """
        Classify a 2xx response body.

        Args:
            body: Decoded response body bytes
            content_type: Value of the Content-Type header ("" if absent)
            url: Request URL, matched against the generation allow-list
            config: Retry configuration snapshot

        Returns:
            ClassificationResult; invalid=False when no check fires or the
            body cannot be interpreted
        """
        if not config.is_generation_url(url):
            return ClassificationResult.valid()

        try:
            return self._classify(body, content_type.lower(), config)
        except Exception as e:
            logger.warning(
                "Could not classify response body, assuming valid",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ClassificationResult.valid()

    def classify_stall(self, url: str, config: RetryConfig) -> ClassificationResult:
        """Verdict for a body that stopped arriving mid-transfer."""
        if config.check_stream_stall and config.is_generation_url(url):
            return ClassificationResult.rejected(ReasonCode.STREAM_STALLED)
        return ClassificationResult.valid()

    def _classify(self, body: bytes, content_type: str, config: RetryConfig) -> ClassificationResult:
        data: Any = None

        if "json" in content_type:
            try:
                data = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.debug("Response body is not valid JSON, skipping classification")
                return ClassificationResult.valid()
            extracted = extract_from_json(data)
        elif "text/event-stream" in content_type:
            extracted = extract_from_event_stream(body.decode("utf-8", errors="replace"))
        elif content_type.startswith("text/"):
            extracted = ExtractedText(text=body.decode("utf-8", errors="replace"))
        else:
            return ClassificationResult.valid()

        # Decoded JSON body, or every decoded event of a stream
        payloads = [data] if data is not None else list(extracted.events)
        words = extracted.word_count
        finish = extracted.finish_reason

        # Check 1: moderation withheld the output
        if config.check_prohibited_content and _has_moderation_marker(payloads, finish):
            logger.warning("Response withheld by provider moderation", finish_reason=finish)
            return ClassificationResult.rejected(ReasonCode.PROHIBITED_CONTENT, words, finish)

        # Check 2: rate-limit error delivered with a 2xx status
        if _has_rate_limit_marker(payloads):
            logger.warning("Rate-limit error embedded in 2xx response")
            return ClassificationResult.rejected(ReasonCode.RATE_LIMITED, words, finish)

        # Check 3: normal stop marker but practically nothing generated
        if (
            config.check_abrupt_stop
            and finish in NORMAL_STOP_REASONS
            and words < ABRUPT_STOP_WORD_FLOOR
        ):
            logger.warning(
                "Provider reported a normal stop but response is truncated",
                word_count=words,
                floor=ABRUPT_STOP_WORD_FLOOR,
            )
            return ClassificationResult.rejected(ReasonCode.ABRUPT_STOP, words, finish)

        # Check 4: empty or too short
        if config.check_empty_response:
            if words == 0:
                logger.warning("Response is empty")
                return ClassificationResult.rejected(ReasonCode.EMPTY, words, finish)
            if words < config.min_word_count:
                logger.warning(
                    "Response too short",
                    word_count=words,
                    min_word_count=config.min_word_count,
                )
                return ClassificationResult.rejected(ReasonCode.TOO_SHORT, words, finish)

        return ClassificationResult.valid(words, finish)
