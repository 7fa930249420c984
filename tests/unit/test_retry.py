"""
Unit tests for retry policies and with_retry.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from core.exceptions import (
    FetchError,
    NotificationError,
    ParseError,
    RateLimitError,
    StorageError,
    ValidationError,
)
from core.retry import fetch_policy, notify_policy, parse_policy, storage_policy, with_retry


class TestFetchPolicy:
    """Test suite for the changelog fetch policy"""

    def test_retries_network_and_server_errors(self):
        policy = fetch_policy()

        assert policy.should_retry(FetchError("timeout"), 0)
        assert policy.should_retry(FetchError("bad gateway", {"status": 502}), 0)
        assert policy.should_retry(FetchError("server", {"status": 500}), 1)

    def test_does_not_retry_client_errors(self):
        policy = fetch_policy()

        assert not policy.should_retry(FetchError("not found", {"status": 404}), 0)
        assert not policy.should_retry(FetchError("forbidden", {"status": 403}), 0)
        assert not policy.should_retry(ValueError("other"), 0)

    def test_delays(self):
        """Test min(5s * 2^attempt, 20s)"""
        policy = fetch_policy()

        assert [policy.delay(i, None) for i in range(4)] == [5, 10, 20, 20]
        assert policy.max_attempts == 3


class TestNotifyPolicy:
    """Test suite for the notification policy"""

    def test_rate_limit_always_retries(self):
        assert notify_policy().should_retry(RateLimitError("slow down", retry_after=3), 2)

    def test_server_and_network_errors_retry(self):
        policy = notify_policy()

        assert policy.should_retry(NotificationError("bad gateway", {"status": 502}), 0)
        assert policy.should_retry(NotificationError("connection reset"), 0)

    def test_client_errors_do_not_retry(self):
        policy = notify_policy()

        assert not policy.should_retry(NotificationError("bad request", {"status": 400}), 0)
        assert not policy.should_retry(NotificationError("forbidden", {"status": 403}), 0)
        assert not policy.should_retry(ValidationError("no version"), 0)

    def test_delay_uses_retry_after(self):
        policy = notify_policy()

        assert policy.delay(0, RateLimitError("slow down", retry_after=17)) == 17

    def test_delay_falls_back_to_backoff(self):
        """Test min(2^attempt * 1s, 10s), also for 429 without a hint"""
        policy = notify_policy()

        assert [policy.delay(i, None) for i in range(5)] == [1, 2, 4, 8, 10]
        assert policy.delay(1, RateLimitError("slow down")) == 2


class TestParseAndStoragePolicies:
    """Test suite for the parse and storage policies"""

    def test_parse_never_retries(self):
        policy = parse_policy()

        assert policy.max_attempts == 1
        assert not policy.should_retry(ParseError("bad"), 0)

    def test_storage_policy(self):
        policy = storage_policy()

        assert policy.max_attempts == 2
        assert policy.should_retry(StorageError("down"), 0)
        assert not policy.should_retry(ValueError("other"), 0)
        assert [policy.delay(i, None) for i in range(2)] == [1, 2]


class TestWithRetry:
    """Test suite for with_retry execution"""

    @pytest.mark.asyncio
    async def test_returns_first_success(self, fake_sleep):
        fn = AsyncMock(return_value="ok")

        assert await with_retry(fn, fetch_policy(), sleep=fake_sleep) == "ok"
        assert fn.await_count == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, fake_sleep):
        fn = AsyncMock(side_effect=[FetchError("timeout"), "body"])

        assert await with_retry(fn, fetch_policy(), sleep=fake_sleep) == "body"
        assert fn.await_count == 2
        assert fake_sleep.delays == [5]

    @pytest.mark.asyncio
    async def test_exhausts_max_attempts(self, fake_sleep):
        """Test retryable errors are attempted exactly max_attempts times"""
        error = FetchError("server", {"status": 503})
        fn = AsyncMock(side_effect=error)

        with pytest.raises(FetchError) as exc_info:
            await with_retry(fn, fetch_policy(), sleep=fake_sleep)

        assert exc_info.value is error
        assert fn.await_count == 3
        assert fake_sleep.delays == [5, 10]

    @pytest.mark.asyncio
    async def test_non_retryable_called_once(self, fake_sleep):
        fn = AsyncMock(side_effect=FetchError("not found", {"status": 404}))

        with pytest.raises(FetchError):
            await with_retry(fn, fetch_policy(), sleep=fake_sleep)

        assert fn.await_count == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self, fake_sleep):
        fn = AsyncMock(side_effect=[RateLimitError("slow down", retry_after=7), None])

        await with_retry(fn, notify_policy(), sleep=fake_sleep)

        assert fn.await_count == 2
        assert fake_sleep.delays == [7]

    @pytest.mark.asyncio
    async def test_last_error_propagates_unchanged(self, fake_sleep):
        first = StorageError("first")
        last = StorageError("last")
        fn = AsyncMock(side_effect=[first, last])

        with pytest.raises(StorageError) as exc_info:
            await with_retry(fn, storage_policy(), sleep=fake_sleep)

        assert exc_info.value is last
        assert fake_sleep.delays == [1]

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self, fake_sleep):
        fn = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await with_retry(fn, notify_policy(), sleep=fake_sleep)

        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_lambda_returning_coroutine_is_awaited(self, fake_sleep):
        """Test call sites that bind arguments with a lambda are retried"""
        send = AsyncMock(
            side_effect=[NotificationError("bad gateway", {"status": 502}), "message-id"]
        )

        result = await with_retry(lambda: send("chat", "text"), notify_policy(), sleep=fake_sleep)

        assert result == "message-id"
        assert send.await_count == 2
        assert fake_sleep.delays == [1]

    @pytest.mark.asyncio
    async def test_lambda_failure_propagates(self, fake_sleep):
        send = AsyncMock(side_effect=NotificationError("bad gateway", {"status": 502}))

        with pytest.raises(NotificationError):
            await with_retry(lambda: send("chat", "text"), notify_policy(), sleep=fake_sleep)

        assert send.await_count == 3
