import os

# Keep test runs off the real backend and out of the log file
os.environ.setdefault("STATE_BACKEND", "memory")
os.environ.setdefault("LOG_FILE", "")

import pytest
from typing import List
from unittest.mock import Mock, AsyncMock

from core.circuit_breaker import CircuitBreakerRegistry
from models.message import ChannelConfig
from repositories.kv_backend import InMemoryKeyValueBackend

# =============================================================================
# Time Fixtures
# =============================================================================


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records delays and advances a FakeClock."""

    def __init__(self, clock: FakeClock = None):
        self.clock = clock
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return RecordingSleep(clock)


# =============================================================================
# Resilience Fixtures
# =============================================================================


@pytest.fixture
def breakers(clock):
    """Fresh breaker registry (changelog 5/60s, telegram 10/30s, storage 3/10s)."""
    return CircuitBreakerRegistry(clock=clock)


# =============================================================================
# Mock Fixtures - External Services
# =============================================================================


@pytest.fixture
def memory_backend(clock):
    return InMemoryKeyValueBackend(clock=clock)


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for database operations."""
    client = Mock()

    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.upsert.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.execute.return_value = Mock(data=[])

    client.table.return_value = table_mock
    return client


def make_response(status: int = 200, json_data=None, chunks=None, content_length=None):
    """aiohttp-like response usable as `async with session.get(...) as resp`."""
    response = Mock()
    response.status = status
    response.content_length = content_length
    response.json = AsyncMock(return_value=json_data)

    async def iter_chunked(size):
        for chunk in chunks or []:
            yield chunk

    response.content = Mock()
    response.content.iter_chunked = iter_chunked
    return response


def make_session(*responses):
    """Session whose get/post context managers yield the given responses in order."""
    session = Mock()
    contexts = []
    for response in responses:
        ctx = AsyncMock()
        if isinstance(response, BaseException):
            ctx.__aenter__.side_effect = response
        else:
            ctx.__aenter__.return_value = response
        ctx.__aexit__.return_value = False
        contexts.append(ctx)
    session.get = Mock(side_effect=contexts)
    session.post = Mock(side_effect=list(contexts))
    return session


@pytest.fixture
def channel_config():
    return ChannelConfig(bot_token="123456:ABC-test-token", chat_id="-100123", thread_id=7)


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def sample_changelog() -> str:
    """Changelog in the upstream layout: newest first, optional dates."""
    return """# Changelog

## [Unreleased]

## 1.1.0 - 2025-01-15

### Added
- New `--json` flag for <stdout> output
- Support for A & B

## 1.0.1

* Fix crash on startup
  - Nested detail line

## [1.0.0] (2024-12-01)

- Initial release
"""


@pytest.fixture
def response_factory():
    return make_response


@pytest.fixture
def session_factory():
    return make_session
