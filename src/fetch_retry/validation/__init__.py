"""
Semantic validation of generation responses.

Components:
- ResponseValidityClassifier: verdict + reason code for a 2xx body
- extraction: text/finish-reason extraction from known response shapes
"""

from fetch_retry.validation.classifier import (
    ABRUPT_STOP_WORD_FLOOR,
    ResponseValidityClassifier,
)
from fetch_retry.validation.extraction import ExtractedText, count_words

__all__ = [
    "ABRUPT_STOP_WORD_FLOOR",
    "ResponseValidityClassifier",
    "ExtractedText",
    "count_words",
]
