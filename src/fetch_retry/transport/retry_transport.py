"""
httpx transport that routes every request through the retry orchestrator.

Composed at construction time around an inner transport instead of
patching a process-wide client:

    client = httpx.AsyncClient(transport=RetryTransport(config_source=settings))

The caller's cancellation token travels in the request extensions:

    cancel = asyncio.Event()
    await client.post(url, json=payload, extensions={"cancel_event": cancel})
"""

import asyncio
from typing import Any, Callable, Optional, Union

import httpx
import structlog

from fetch_retry.config import RetryConfig, Settings
from fetch_retry.notifications import Notifier
from fetch_retry.retry.engine import RetryOrchestrator
from fetch_retry.validation.classifier import ResponseValidityClassifier

logger = structlog.get_logger(__name__)

CANCEL_EVENT_EXTENSION = "cancel_event"

ConfigSource = Union[RetryConfig, Settings, Callable[[], RetryConfig]]


def _snapshot_reader(source: ConfigSource) -> Callable[[], RetryConfig]:
    """Normalise a config source into a zero-argument snapshot reader."""
    if isinstance(source, RetryConfig):
        return lambda: source
    if isinstance(source, Settings):
        return source.retry_config
    if callable(source):
        return source
    raise TypeError(f"Unsupported config source: {type(source).__name__}")


class RetryTransport(httpx.AsyncBaseTransport):
    """
    Async transport wrapper applying the retry policy.

    A fresh RetryConfig snapshot is taken per request, so settings changes
    affect the next call and never one already in flight.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        config_source: Optional[ConfigSource] = None,
        notifier: Optional[Notifier] = None,
        classifier: Optional[ResponseValidityClassifier] = None,
    ):
        self._transport = transport if transport is not None else httpx.AsyncHTTPTransport()
        self._read_config = _snapshot_reader(config_source if config_source is not None else RetryConfig())
        self.orchestrator = RetryOrchestrator(
            self._transport.handle_async_request,
            notifier=notifier,
            classifier=classifier,
        )

        logger.debug(
            "RetryTransport initialized",
            inner_transport=type(self._transport).__name__,
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        config = self._read_config()
        cancel_event = request.extensions.get(CANCEL_EVENT_EXTENSION)
        # The inner transport only understands httpx's own extensions
        request.extensions = {
            key: value for key, value in request.extensions.items() if key != CANCEL_EVENT_EXTENSION
        }
        if cancel_event is not None and not isinstance(cancel_event, asyncio.Event):
            raise TypeError(f"'{CANCEL_EVENT_EXTENSION}' extension must be an asyncio.Event")
        return await self.orchestrator.execute(request, config, cancel_event=cancel_event)

    async def aclose(self) -> None:
        await self._transport.aclose()


def create_client(
    config_source: Optional[ConfigSource] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    notifier: Optional[Notifier] = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient whose requests all go through RetryTransport.

    Per-attempt timeouts are enforced by the orchestrator, so the client's
    own read timeout is disabled unless overridden.
    """
    client_kwargs.setdefault("timeout", httpx.Timeout(None, connect=10.0))
    return httpx.AsyncClient(
        transport=RetryTransport(transport=transport, config_source=config_source, notifier=notifier),
        **client_kwargs,
    )
