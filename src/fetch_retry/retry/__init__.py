"""
Retry orchestration for outbound generation calls.

The orchestrator unifies three failure signals (transport, HTTP status,
semantic invalidity of a 2xx body) into one decision per attempt:

1. **Classify**: map the outcome onto a FailureClass
2. **Decide**: stop on success, non-retryable class or exhausted attempts
3. **Rewrite**: after a moderation rejection, run the payload mutation strategy
4. **Wait**: sleep for the backoff delay, abortable by the caller

Main Components:
    - RetryOrchestrator: the control loop
    - BackoffPolicy: multi-track delay computation
    - PayloadMutationStrategy: staged rewrite after moderation rejections
    - RetryContext: per-call mutable state
    - BufferedBody: single-read response body with independent readers

Usage:
    >>> from fetch_retry.retry import RetryOrchestrator
    >>> orchestrator = RetryOrchestrator(transport.handle_async_request)
    >>> response = await orchestrator.execute(request, config)
"""

from fetch_retry.retry.backoff import BackoffPolicy, parse_retry_after
from fetch_retry.retry.buffering import BufferedBody, buffer_response
from fetch_retry.retry.context import RetryContext
from fetch_retry.retry.engine import RetryOrchestrator
from fetch_retry.retry.mutation import PayloadMutationStrategy

__all__ = [
    "RetryOrchestrator",
    "BackoffPolicy",
    "parse_retry_after",
    "BufferedBody",
    "buffer_response",
    "RetryContext",
    "PayloadMutationStrategy",
]
