"""Monitoring instrumentation for the retry middleware."""

from fetch_retry.monitoring.metrics import (
    attempts_total,
    backoff_delay_seconds,
    calls_total,
    classifications_total,
)

__all__ = [
    "attempts_total",
    "backoff_delay_seconds",
    "calls_total",
    "classifications_total",
]
