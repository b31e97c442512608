"""
httpx integration.

- RetryTransport: AsyncBaseTransport wrapper driving the retry orchestrator
- create_client: AsyncClient factory wired through RetryTransport
"""

from fetch_retry.transport.retry_transport import (
    CANCEL_EVENT_EXTENSION,
    RetryTransport,
    create_client,
)

__all__ = [
    "CANCEL_EVENT_EXTENSION",
    "RetryTransport",
    "create_client",
]
