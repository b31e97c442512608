"""
Retry orchestrator: the control loop behind every intercepted call.

For each attempt the orchestrator issues the request, classifies the
outcome into exactly one FailureClass, and decides whether to stop, wait
or rewrite the payload:

    transport error / attempt timeout   -> TRANSPORT / TIMEOUT      (retry)
    429                                 -> RATE_LIMITED             (retry)
    5xx                                 -> HTTP_SERVER_ERROR        (retry)
    other 4xx                           -> HTTP_CLIENT_ERROR        (returned as-is)
    2xx rejected by the classifier      -> VALIDATION_FAILED        (retry)
    mutation strategy gives up          -> UNRECOVERABLE            (stop)

The backoff wait is the only place the loop suspends besides the network
call itself. A caller cancellation (task cancel or cancel_event) ends the
loop immediately; a per-attempt timeout is just another retryable failure.

Usage:
    orchestrator = RetryOrchestrator(transport.handle_async_request)
    response = await orchestrator.execute(request, settings.retry_config())
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

from fetch_retry.config import RetryConfig
from fetch_retry.logging_config import bind_attempt, call_context
from fetch_retry.exceptions import (
    HttpClientFailure,
    HttpServerFailure,
    RateLimited,
    RequestCancelled,
    RetryMiddlewareError,
    StreamStalled,
    TimeoutFailure,
    TransportFailure,
    UnrecoverableFailure,
    ValidationFailure,
)
from fetch_retry.models.enums import ReasonCode
from fetch_retry.models.responses import ClassificationResult, ResponseMeta
from fetch_retry.monitoring.metrics import (
    attempts_total,
    backoff_delay_seconds,
    calls_total,
    classifications_total,
)
from fetch_retry.notifications import LogNotifier, Notifier
from fetch_retry.retry.backoff import BackoffPolicy, parse_retry_after
from fetch_retry.retry.buffering import BufferedBody, buffer_response
from fetch_retry.retry.context import RetryContext
from fetch_retry.retry.mutation import PayloadMutationStrategy
from fetch_retry.validation.classifier import ResponseValidityClassifier

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SendFn = Callable[[httpx.Request], Awaitable[httpx.Response]]
SleepFn = Callable[[float], Awaitable[None]]

ERROR_SNIPPET_CHARS = 500


def _with_body(request: httpx.Request, body: bytes) -> httpx.Request:
    """Fresh copy of ``request`` carrying ``body`` (length headers recomputed)."""
    headers = [
        (name, value)
        for name, value in request.headers.multi_items()
        if name.lower() not in ("content-length", "transfer-encoding")
    ]
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        content=body,
        extensions=dict(request.extensions),
    )


async def _discard(task: "asyncio.Future") -> None:
    """Cancel ``task`` if still running and release whatever it produced."""
    if not task.done():
        task.cancel()
        await asyncio.wait({task})
    if task.cancelled() or task.exception() is not None:
        return
    result = task.result()
    if isinstance(result, httpx.Response):
        await result.aclose()


class RetryOrchestrator:
    """
    Drives one independent retry loop per call.

    No state is shared between calls: everything mutable lives in a
    RetryContext created by ``execute``.

    Attributes:
        send: Network primitive (e.g. an httpx transport's handle_async_request)
        notifier: Sink for terminal failures
        classifier: Response validity classifier
    """

    def __init__(
        self,
        send: SendFn,
        notifier: Optional[Notifier] = None,
        classifier: Optional[ResponseValidityClassifier] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.send = send
        self.notifier: Notifier = notifier if notifier is not None else LogNotifier()
        self.classifier = classifier if classifier is not None else ResponseValidityClassifier()
        self._sleep = sleep

    async def execute(
        self,
        request: httpx.Request,
        config: RetryConfig,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> httpx.Response:
        """
        Issue ``request`` under the retry policy in ``config``.

        Args:
            request: Outbound request
            config: Policy snapshot, read once for the whole call
            cancel_event: Caller cancellation token; setting it aborts the
                call (including a pending backoff wait) with RequestCancelled

        Returns:
            A usable response, or a non-retryable 4xx response as-is

        Raises:
            RequestCancelled: cancel_event was set
            UnrecoverableFailure: payload mutation gave up
            RetryMiddlewareError: the last retryable failure once attempts ran out
        """
        url = str(request.url)
        is_generation = config.is_generation_url(url)

        if not config.enabled or (not is_generation and not config.retry_non_generation_requests):
            calls_total.labels(outcome="passthrough").inc()
            return await self.send(request)

        body = await request.aread()
        ctx = RetryContext(request=request, body=body, max_retries=config.max_retries)
        backoff = BackoffPolicy(config)
        mutation = (
            PayloadMutationStrategy.from_config(config)
            if config.enable_payload_mutation and is_generation
            else None
        )
        with call_context(request):
            while True:
                try:
                    response = await self._attempt(ctx, config, is_generation, cancel_event)

                except RequestCancelled:
                    calls_total.labels(outcome="cancelled").inc()
                    logger.info("Call cancelled by caller")
                    raise

                except HttpClientFailure as e:
                    attempts_total.labels(failure_class=e.failure_class.value).inc()
                    ctx.record_failure(e, e.failure_class)
                    logger.warning("Client error, not retrying", status_code=e.status_code)
                    self._notify(ctx, config)
                    calls_total.labels(outcome="client_error").inc()
                    return e.response

                except RetryMiddlewareError as e:
                    failure_class = e.failure_class
                    reason = e.reason if isinstance(e, ValidationFailure) else ReasonCode.NONE
                    ctx.record_failure(e, failure_class, reason)
                    attempts_total.labels(failure_class=failure_class.value).inc()

                    logger.warning(
                        "Attempt failed",
                        total_attempts=ctx.total_attempts,
                        failure_class=failure_class.value,
                        reason=reason.value,
                        error=e.message,
                    )

                    if not failure_class.retryable or ctx.exhausted:
                        logger.error(
                            f"All {ctx.attempt_number} attempts failed",
                            failure_class=failure_class.value,
                        )
                        self._notify(ctx, config)
                        calls_total.labels(outcome="failed").inc()
                        raise

                    if ctx.content_filter_retry and mutation is not None:
                        ctx.mutation_count += 1
                        try:
                            ctx.body = mutation.mutate(ctx.body, ctx.mutation_count)
                        except UnrecoverableFailure as unrecoverable:
                            logger.error(
                                "Request unrecoverable after payload mutation",
                                mutation_count=ctx.mutation_count,
                            )
                            ctx.last_failure_class = unrecoverable.failure_class
                            self._notify(ctx, config)
                            calls_total.labels(outcome="unrecoverable").inc()
                            raise unrecoverable from e

                    delay_ms = backoff.compute_delay(
                        failure_class,
                        ctx.attempt_index,
                        server_hint_seconds=ctx.server_hint_seconds,
                        reason=reason,
                    )
                    ctx.delays_ms.append(delay_ms)
                    backoff_delay_seconds.labels(failure_class=failure_class.value).observe(delay_ms / 1000.0)
                    logger.info(
                        f"Retrying in {delay_ms:.0f}ms (attempt {ctx.attempt_number + 1}/{ctx.total_attempts})",
                        delay_ms=round(delay_ms, 1),
                        failure_class=failure_class.value,
                    )

                    try:
                        await self._guard(self._sleep(delay_ms / 1000.0), None, cancel_event)
                    except RequestCancelled:
                        calls_total.labels(outcome="cancelled").inc()
                        logger.info("Call cancelled during backoff")
                        raise

                    ctx.advance()
                    bind_attempt(ctx.attempt_number)
                    continue

                attempts_total.labels(failure_class="success").inc()
                calls_total.labels(outcome="success").inc()
                if ctx.attempt_index > 0:
                    logger.info("Call succeeded after retry", attempts=ctx.attempt_number)
                return response

    async def _attempt(
        self,
        ctx: RetryContext,
        config: RetryConfig,
        is_generation: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> httpx.Response:
        """One execution of the network primitive, mapped onto the failure taxonomy."""
        ctx.server_hint_seconds = None
        timeout = config.attempt_timeout_ms / 1000.0
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            response = await self._guard(
                self.send(_with_body(ctx.request, ctx.body)), timeout, cancel_event
            )
        except httpx.TimeoutException as e:
            raise TimeoutFailure(
                f"Request timeout: {e}", details={"error_type": type(e).__name__}
            ) from e
        except httpx.TransportError as e:
            raise TransportFailure(
                f"Network error: {e}", details={"error_type": type(e).__name__}
            ) from e

        meta = ResponseMeta.from_response(response, url=ctx.url)
        ctx.last_response_meta = meta
        ctx.server_hint_seconds = parse_retry_after(response.headers)
        status = response.status_code

        if status == 429 or status >= 500:
            error_text = await self._read_error_text(
                response, max(deadline - loop.time(), 0.0), cancel_event
            )
            details = {"error": error_text} if error_text else {}
            if status == 429:
                raise RateLimited(
                    "Rate limited (429)",
                    meta,
                    retry_after_seconds=ctx.server_hint_seconds,
                    details=details,
                )
            raise HttpServerFailure(f"Server error: {status}", meta, details=details)

        if 400 <= status < 500:
            raise HttpClientFailure(f"Client error: {status}", meta, response=response)

        if not 200 <= status < 300 or not is_generation:
            return response

        inactivity = (
            config.stream_inactivity_timeout_ms / 1000.0 if config.check_stream_stall else None
        )
        try:
            # The body shares the attempt budget with the headers
            remaining = max(deadline - loop.time(), 0.0)
            buffered = await self._guard(buffer_response(response, inactivity), remaining, cancel_event)
        except StreamStalled as e:
            verdict = self.classifier.classify_stall(ctx.url, config)
            classifications_total.labels(reason=verdict.reason.value).inc()
            raise ValidationFailure(
                "Response stream stalled", verdict.reason, details=e.details
            ) from e
        except httpx.TimeoutException as e:
            raise TimeoutFailure(f"Timeout reading response body: {e}") from e
        except httpx.TransportError as e:
            raise TransportFailure(f"Network error reading response body: {e}") from e

        logger.debug("Buffered generation response", bytes_received=len(buffered))
        verdict = await self._classify(buffered, ctx.url, config)
        classifications_total.labels(reason=verdict.reason.value).inc()
        if verdict.invalid:
            raise ValidationFailure(
                f"Response rejected: {verdict.reason.value}",
                verdict.reason,
                response=buffered.response(),
                details={"word_count": verdict.word_count, "finish_reason": verdict.finish_reason},
            )
        return buffered.response()

    async def _classify(
        self, buffered: BufferedBody, url: str, config: RetryConfig
    ) -> ClassificationResult:
        try:
            decoded = await buffered.decoded()
        except httpx.DecodingError as e:
            logger.warning("Could not decode response body, assuming valid", error=str(e))
            return ClassificationResult.valid()
        return self.classifier.classify(decoded, buffered.content_type, url, config)

    async def _read_error_text(
        self,
        response: httpx.Response,
        timeout: float,
        cancel_event: Optional[asyncio.Event],
    ) -> str:
        """First characters of an error body; the response is closed afterwards."""
        try:
            await self._guard(response.aread(), timeout, cancel_event)
            return response.text[:ERROR_SNIPPET_CHARS]
        except (httpx.HTTPError, TimeoutFailure) as e:
            logger.debug("Could not read error body", error=str(e))
            return ""
        finally:
            await response.aclose()

    async def _guard(
        self,
        awaitable: Awaitable[T],
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> T:
        """
        Await ``awaitable`` within a per-attempt scope.

        The caller's cancel_event always wins over completion or timeout.

        Raises:
            RequestCancelled: cancel_event was set first
            TimeoutFailure: timeout elapsed first
        """
        if cancel_event is None and timeout is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        waiters: set = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await _discard(task)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if cancel_event is not None and cancel_event.is_set():
            await _discard(task)
            raise RequestCancelled("Request cancelled by caller")

        if task in done:
            return task.result()

        await _discard(task)
        raise TimeoutFailure(
            f"Attempt exceeded {timeout}s", details={"timeout_s": timeout}
        )

    def _notify(self, ctx: RetryContext, config: RetryConfig) -> None:
        if not config.show_error_notification:
            return
        try:
            self.notifier.notify(ctx.last_error, ctx.last_response_meta)
        except Exception as e:
            logger.warning(
                "Failure notification could not be delivered",
                error=str(e),
                error_type=type(e).__name__,
            )
