"""
Data models for Fetch Retry.

- enums: FailureClass, ReasonCode
- responses: ClassificationResult, ResponseMeta
"""

from fetch_retry.models.enums import FailureClass, ReasonCode
from fetch_retry.models.responses import ClassificationResult, ResponseMeta

__all__ = [
    "FailureClass",
    "ReasonCode",
    "ClassificationResult",
    "ResponseMeta",
]
