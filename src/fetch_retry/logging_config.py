"""Structured logging for the retry middleware.

Every event logged while a call is in flight carries the same ``call_id``
together with the request url, method and current attempt number. These
live in structlog's context variables, so helpers several frames below the
orchestrator (classifier, mutation, notifier) get them without passing a
bound logger around.

``configure_logging`` is optional. It renders structlog events only and
leaves the host application's stdlib handlers alone.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Iterator

import httpx
import structlog
from structlog.types import EventDict, WrappedLogger

COMPONENT = "fetch-retry"


def add_component(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag every event with the middleware name."""
    event_dict.setdefault("component", COMPONENT)
    return event_dict


@contextmanager
def call_context(request: httpx.Request) -> Iterator[str]:
    """Bind a fresh call id plus request identity for the duration of a call.

    Yields the call id. The previous context values are restored on exit,
    including when the call raises.
    """
    call_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(
        call_id=call_id,
        url=str(request.url),
        method=request.method,
        attempt=1,
    ):
        yield call_id


def bind_attempt(attempt_number: int) -> None:
    """Update the attempt number logged by the current call."""
    structlog.contextvars.bind_contextvars(attempt=attempt_number)


def configure_logging(log_level: str = "INFO", environment: str = "development") -> None:
    """Configure structlog rendering for the middleware's events.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
        environment: "production" selects the JSON renderer, anything else
            the console renderer
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    is_production = environment.lower() == "production"

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_component,
    ]
    if is_production:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    structlog.get_logger(__name__).debug(
        "Logging configured",
        log_level=log_level,
        renderer="json" if is_production else "console",
    )
