"""Integration test fixtures.

Integration tests drive a real httpx.AsyncClient through RetryTransport;
the upstream API is an httpx.MockTransport serving scripted responses.
"""

from typing import Callable, Iterable, Union

import httpx
import pytest

Outcome = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class ScriptedUpstream:
    """Serves one scripted outcome per request and records what it received."""

    def __init__(self, outcomes: Iterable[Outcome]):
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.outcomes:
            raise AssertionError(f"Unexpected request #{len(self.requests)} to {request.url}")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(request)
        return outcome

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def upstream_factory():
    """Build a ScriptedUpstream from a list of outcomes."""
    return ScriptedUpstream
