"""Prometheus metrics for the retry middleware.

Exposed through the default prometheus_client registry; the host
application decides how to serve it. Alert rules worth configuring:
- attempts_total{failure_class="rate_limited"} (provider throttling)
- calls_total{outcome="failed"} (callers receiving errors)
- classifications_total{reason!="none"} (model output quality drift)
"""

from prometheus_client import Counter, Histogram

# === Attempt Metrics ===

attempts_total = Counter(
    "fetch_retry_attempts_total",
    "Attempts issued by the retry orchestrator, by outcome class",
    ["failure_class"],
)
"""
Labels:
- failure_class: FailureClass value, or "success"
"""

# === Call Metrics ===

calls_total = Counter(
    "fetch_retry_calls_total",
    "Calls resolved by the retry orchestrator",
    ["outcome"],
)
"""
Labels:
- outcome: success, failed, unrecoverable, cancelled, passthrough, client_error
"""

# === Classification Metrics ===

classifications_total = Counter(
    "fetch_retry_classifications_total",
    "Validity verdicts for generation responses",
    ["reason"],
)
"""
Labels:
- reason: ReasonCode value ("none" for valid bodies)
"""

# === Backoff Metrics ===

backoff_delay_seconds = Histogram(
    "fetch_retry_backoff_delay_seconds",
    "Backoff delay waited before a retry",
    ["failure_class"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)
