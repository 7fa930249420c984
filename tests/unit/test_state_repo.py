"""
Unit tests for StateStore and the key-value backends.

Tests cover:
- Round trip through the in-memory backend
- Corrupt records treated as first run
- Retry and StorageError wrapping
- Storage circuit breaker integration
- Supabase backend queries
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, Mock, patch

from core import constants
from core.circuit_breaker import CircuitState
from core.config import settings
from core.database import Database
from core.exceptions import CircuitOpenError, ConfigError, StorageError
from core.utils import parse_timestamp
from models.state import PersistedState
from repositories.kv_backend import InMemoryKeyValueBackend, SupabaseKeyValueBackend
from repositories.state_repo import StateStore


class TestStateStore:
    """Test suite for StateStore"""

    @pytest.fixture
    def store(self, memory_backend, breakers, fake_sleep):
        return StateStore(memory_backend, breakers.storage, sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_first_run_when_empty(self, store):
        assert await store.get() is None
        assert await store.is_first_run()

    @pytest.mark.asyncio
    async def test_initialize_writes_state(self, store, memory_backend):
        state = await store.initialize("2.3.0")

        assert state.last_version == "2.3.0"
        assert state.last_notification_time is None
        assert not await store.is_first_run()

        raw = json.loads(await memory_backend.get(constants.STATE_KEY))
        assert raw["lastVersion"] == "2.3.0"
        assert "lastCheckTime" in raw
        assert "lastNotificationTime" not in raw

    @pytest.mark.asyncio
    async def test_set_and_get_round_trip(self, store):
        now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
        state = PersistedState(last_version="1.1.0", last_check_time=now, last_notification_time=now)

        await store.set(state)

        assert await store.get() == state

    @pytest.mark.asyncio
    async def test_writes_use_ttl(self, breakers, fake_sleep):
        backend = Mock()
        backend.put = AsyncMock()
        store = StateStore(backend, breakers.storage, sleep=fake_sleep)

        await store.initialize("1.0.0")

        key, _, ttl = backend.put.await_args.args
        assert key == constants.STATE_KEY
        assert ttl == 30 * 24 * 60 * 60

    @pytest.mark.asyncio
    async def test_expired_record_is_first_run(self, store, clock):
        await store.initialize("1.0.0")

        clock.advance(constants.STATE_TTL_SECONDS + 1)

        assert await store.is_first_run()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b"[1, 2, 3]",
            b'"1.0.0"',
            b'{"lastCheckTime": "2025-01-01T00:00:00Z"}',
            b'{"lastVersion": "1.0.0"}',
            b'{"lastVersion": "not-a-version", "lastCheckTime": "2025-01-01T00:00:00Z"}',
            b"\xff\xfe",
        ],
    )
    async def test_corrupt_record_is_first_run(self, store, memory_backend, raw):
        """Test structurally invalid records read as absent, not as errors"""
        await memory_backend.put(constants.STATE_KEY, raw, 60)

        assert await store.get() is None
        assert await store.is_first_run()

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, breakers, fake_sleep):
        backend = Mock()
        backend.get = AsyncMock(side_effect=[ConnectionError("reset"), None])
        store = StateStore(backend, breakers.storage, sleep=fake_sleep)

        assert await store.get() is None
        assert backend.get.await_count == 2
        assert fake_sleep.delays == [1]

    @pytest.mark.asyncio
    async def test_storage_error_after_two_attempts(self, breakers, fake_sleep):
        """Test StorageError carries the last underlying error"""
        last = ConnectionError("still down")
        backend = Mock()
        backend.get = AsyncMock(side_effect=[ConnectionError("down"), last])
        store = StateStore(backend, breakers.storage, sleep=fake_sleep)

        with pytest.raises(StorageError) as exc_info:
            await store.get()

        assert backend.get.await_count == 2
        assert exc_info.value.__cause__ is last
        assert exc_info.value.details["error"] == "still down"

    @pytest.mark.asyncio
    async def test_hanging_backend_times_out(self, breakers, fake_sleep):
        """Test a stuck backend call surfaces as a retried StorageError"""

        async def hang(*args):
            await asyncio.Event().wait()

        backend = Mock()
        backend.get = AsyncMock(side_effect=hang)
        store = StateStore(backend, breakers.storage, sleep=fake_sleep, timeout=0.01)

        with pytest.raises(StorageError) as exc_info:
            await asyncio.wait_for(store.get(), timeout=2)

        assert backend.get.await_count == 2
        assert fake_sleep.delays == [1]
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_breaker_opens_after_repeated_failures(self, breakers, fake_sleep):
        backend = Mock()
        backend.put = AsyncMock(side_effect=OSError("disk"))
        store = StateStore(backend, breakers.storage, sleep=fake_sleep)

        for _ in range(3):
            with pytest.raises(StorageError):
                await store.initialize("1.0.0")

        assert breakers.storage.state is CircuitState.OPEN
        calls = backend.put.await_count

        with pytest.raises(CircuitOpenError):
            await store.initialize("1.0.0")
        assert backend.put.await_count == calls


class TestInMemoryKeyValueBackend:
    """Test suite for the in-memory backend"""

    @pytest.mark.asyncio
    async def test_put_get_delete(self, clock):
        backend = InMemoryKeyValueBackend(clock=clock)

        await backend.put("k", b"v", 10)
        assert await backend.get("k") == b"v"

        await backend.delete("k")
        assert await backend.get("k") is None
        await backend.delete("missing")

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, clock):
        backend = InMemoryKeyValueBackend(clock=clock)
        await backend.put("k", b"v", 10)

        clock.advance(9)
        assert await backend.get("k") == b"v"
        clock.advance(1)
        assert await backend.get("k") is None


class TestSupabaseKeyValueBackend:
    """Test suite for the Supabase backend (mocked client)"""

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_supabase_client):
        backend = SupabaseKeyValueBackend(mock_supabase_client, "kv_store")

        assert await backend.get("k") is None
        mock_supabase_client.table.assert_called_with("kv_store")

    @pytest.mark.asyncio
    async def test_get_live_row(self, mock_supabase_client):
        expires = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
        mock_supabase_client.table.return_value.execute.return_value = Mock(
            data=[{"value": '{"a": 1}', "expires_at": expires}]
        )
        backend = SupabaseKeyValueBackend(mock_supabase_client, "kv_store")

        assert await backend.get("k") == b'{"a": 1}'

    @pytest.mark.asyncio
    async def test_get_expired_row(self, mock_supabase_client):
        mock_supabase_client.table.return_value.execute.return_value = Mock(
            data=[{"value": "x", "expires_at": "2000-01-01T00:00:00Z"}]
        )
        backend = SupabaseKeyValueBackend(mock_supabase_client, "kv_store")

        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_put_upserts_with_expiry(self, mock_supabase_client):
        backend = SupabaseKeyValueBackend(mock_supabase_client, "kv_store")

        await backend.put("k", b"value", 60)

        row = mock_supabase_client.table.return_value.upsert.call_args.args[0]
        assert row["key"] == "k"
        assert row["value"] == "value"
        assert row["expires_at"] is not None

    @pytest.mark.asyncio
    async def test_delete(self, mock_supabase_client):
        backend = SupabaseKeyValueBackend(mock_supabase_client, "kv_store")

        await backend.delete("k")

        mock_supabase_client.table.return_value.delete.assert_called_once()
        mock_supabase_client.table.return_value.eq.assert_called_with("key", "k")


class TestDatabase:
    """Test suite for the Supabase client factory"""

    @pytest.fixture(autouse=True)
    def reset_client(self):
        Database.reset()
        yield
        Database.reset()

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", None)

        with pytest.raises(ConfigError):
            Database.get_client()

    def test_client_cached(self, monkeypatch, mock_supabase_client):
        monkeypatch.setattr(settings, "SUPABASE_URL", "https://project.supabase.co")
        monkeypatch.setattr(settings, "SUPABASE_KEY", "key")

        with patch("core.database.create_client", return_value=mock_supabase_client) as factory:
            assert Database.get_client() is mock_supabase_client
            assert Database.get_client() is mock_supabase_client

        factory.assert_called_once_with("https://project.supabase.co", "key")

    def test_client_failure_raises_storage_error(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_URL", "https://project.supabase.co")
        monkeypatch.setattr(settings, "SUPABASE_KEY", "key")

        with patch("core.database.create_client", side_effect=RuntimeError("boom")), patch(
            "core.database.time.sleep"
        ) as sleep:
            with pytest.raises(StorageError):
                Database.get_client(max_retries=2)

        sleep.assert_called_once_with(2)


class TestParseTimestamp:
    """Test suite for PostgREST timestamp parsing"""

    @pytest.mark.parametrize(
        "value",
        ["2025-01-15T12:00:00Z", "2025-01-15T12:00:00+00:00", "2025-01-15T12:00:00.000+00:00"],
    )
    def test_utc_forms(self, value):
        assert parse_timestamp(value) == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_short_fraction_and_offset(self):
        parsed = parse_timestamp("2025-01-15T14:00:00.12+02:00")

        assert parsed == datetime(2025, 1, 15, 12, 0, 0, 120000, tzinfo=timezone.utc)
