"""
Unit tests for orchestrator metrics.

Counters live in the process-wide registry, so assertions compare
before/after values instead of absolutes.
"""

from unittest.mock import AsyncMock

import httpx
import pytest
from prometheus_client import REGISTRY

from fetch_retry.retry.engine import RetryOrchestrator

CHAT_URL = "https://api.example.com/v1/chat/completions"


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def create_chat_request() -> httpx.Request:
    return httpx.Request("POST", CHAT_URL, json={"messages": [{"role": "user", "content": "hi"}]})


@pytest.mark.asyncio
async def test_retry_then_success_counted(test_config, mock_sleep):
    before_calls = sample("fetch_retry_calls_total", outcome="success")
    before_rate_limited = sample("fetch_retry_attempts_total", failure_class="rate_limited")
    before_waits = sample("fetch_retry_backoff_delay_seconds_count", failure_class="rate_limited")

    send = AsyncMock(side_effect=[
        httpx.Response(429, text="slow down"),
        httpx.Response(200, json={"choices": [{"message": {"content": "a perfectly fine answer here"}}]}),
    ])
    await RetryOrchestrator(send, sleep=mock_sleep).execute(create_chat_request(), test_config)

    assert sample("fetch_retry_calls_total", outcome="success") == before_calls + 1
    assert sample("fetch_retry_attempts_total", failure_class="rate_limited") == before_rate_limited + 1
    assert sample("fetch_retry_backoff_delay_seconds_count", failure_class="rate_limited") == before_waits + 1


@pytest.mark.asyncio
async def test_passthrough_counted(test_config):
    before = sample("fetch_retry_calls_total", outcome="passthrough")

    send = AsyncMock(return_value=httpx.Response(200))
    request = httpx.Request("GET", "https://api.example.com/v1/models")
    await RetryOrchestrator(send).execute(request, test_config)

    assert sample("fetch_retry_calls_total", outcome="passthrough") == before + 1
