"""Shared fixtures for unit tests.

Provides:
- clock: ManualClock pinned to 2024-01-01 UTC
- recording_sleep: sleep that returns immediately and records requested delays
- stepped_sleep: sleep that blocks until the test releases it
- registry: empty HandlerRegistry
- no_jitter_policy: deterministic RetryPolicy (delays 1s, 2s, 4s ...)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from helpers import RecordingSleep, SteppedSleep

from resilient.core.clock import ManualClock
from resilient.queue.registry import HandlerRegistry
from resilient.resilience.config import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def stepped_sleep() -> SteppedSleep:
    return SteppedSleep()


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def no_jitter_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, exponential_base=2.0, jitter=False)


@pytest.fixture
def mock_redis() -> MagicMock:
    """Mock of the raw Redis commands object yielded by ``aget_client``."""
    return MagicMock()


@pytest.fixture
def mock_redis_client(mock_redis: MagicMock) -> MagicMock:
    """Mock BaseRedisClient whose ``aget_client`` yields ``mock_redis``."""
    client = MagicMock()

    @asynccontextmanager
    async def mock_aget_client() -> AsyncIterator[MagicMock]:
        yield mock_redis

    client.aget_client = mock_aget_client
    return client
