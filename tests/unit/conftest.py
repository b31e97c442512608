"""Unit test fixtures (mocks and stubs).

Provides mock objects for testing without a network.
"""

from unittest.mock import AsyncMock, Mock

import pytest


@pytest.fixture
def mock_sleep():
    """Replacement for asyncio.sleep that returns immediately."""
    return AsyncMock(return_value=None)


@pytest.fixture
def mock_notifier():
    """Notifier stub recording terminal failures."""
    notifier = Mock()
    notifier.notify = Mock(return_value=None)
    return notifier
