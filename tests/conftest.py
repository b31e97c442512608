"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests.
"""

import pytest

from fetch_retry.config import RetryConfig, Settings


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.MAX_RETRIES = 0
    """
    return Settings(
        # === Application ===
        APP_NAME="Fetch Retry (Test)",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === Retry Policy ===
        MAX_RETRIES=3,
        RETRY_DELAY_MS=1,
        MAX_DELAY_MS=50,
        RATE_LIMIT_DELAY_MS=2,
        SHORT_RESPONSE_DELAY_MS=3,
        RETRY_AFTER_CAP_MS=20,
        ATTEMPT_TIMEOUT_MS=2000,

        # === Validity Checks ===
        CHECK_EMPTY_RESPONSE=True,
        MIN_WORD_COUNT=5,
        STREAM_INACTIVITY_TIMEOUT_MS=500,

        # === Notifications ===
        SHOW_ERROR_NOTIFICATION=True,
    )


@pytest.fixture
def test_config() -> RetryConfig:
    """Retry snapshot with real production delays.

    Unit tests inject a mocked sleep into the orchestrator, so the delays
    are asserted on, never actually waited.
    """
    return RetryConfig(
        max_retries=3,
        retry_delay_ms=1000,
        max_delay_ms=120000,
        rate_limit_delay_ms=5000,
        short_response_delay_ms=25000,
        retry_after_cap_ms=30000,
        attempt_timeout_ms=2000,
        check_empty_response=True,
        min_word_count=5,
        stream_inactivity_timeout_ms=200,
    )


@pytest.fixture
def fast_config(test_settings: Settings) -> RetryConfig:
    """Retry snapshot with millisecond delays for tests that really sleep."""
    return test_settings.retry_config()
