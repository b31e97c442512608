"""
Value models exchanged between the classifier, orchestrator and notifier.

These are internal to the middleware; the caller only ever sees
httpx.Response objects and the exceptions in fetch_retry.exceptions.
"""

from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from fetch_retry.models.enums import ReasonCode


class ClassificationResult(BaseModel):
    """Validity verdict for one 2xx response body. Produced fresh per attempt."""

    model_config = ConfigDict(frozen=True)

    invalid: bool = Field(default=False, description="Whether the body is unusable")
    reason: ReasonCode = Field(default=ReasonCode.NONE, description="Why the body is unusable")
    word_count: Optional[int] = Field(default=None, description="Words in the extracted text")
    finish_reason: Optional[str] = Field(default=None, description="Provider termination marker")

    @classmethod
    def valid(cls, word_count: Optional[int] = None, finish_reason: Optional[str] = None) -> "ClassificationResult":
        return cls(invalid=False, reason=ReasonCode.NONE, word_count=word_count, finish_reason=finish_reason)

    @classmethod
    def rejected(
        cls,
        reason: ReasonCode,
        word_count: Optional[int] = None,
        finish_reason: Optional[str] = None,
    ) -> "ClassificationResult":
        return cls(invalid=True, reason=reason, word_count=word_count, finish_reason=finish_reason)


class ResponseMeta(BaseModel):
    """Status line and headers of the last response seen by a call."""

    model_config = ConfigDict(frozen=True)

    status_code: int = Field(..., ge=100, le=999)
    reason_phrase: str = Field(default="")
    headers: dict[str, str] = Field(default_factory=dict)
    url: str = Field(default="")

    @classmethod
    def from_response(cls, response: httpx.Response, url: str = "") -> "ResponseMeta":
        return cls(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            headers=dict(response.headers.items()),
            url=url,
        )
