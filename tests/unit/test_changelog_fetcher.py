"""
Unit tests for ChangelogFetcher.
"""

import asyncio

import aiohttp
import pytest

from core.exceptions import FetchError
from core.retry import fetch_policy
from services.changelog_fetcher import ChangelogFetcher

URL = "https://example.com/CHANGELOG.md"


class TestChangelogFetcher:
    """Test suite for ChangelogFetcher.fetch"""

    @pytest.fixture
    def fetcher(self):
        return ChangelogFetcher(timeout=10, max_bytes=100, user_agent="test-agent")

    @pytest.mark.asyncio
    async def test_fetch_decodes_utf8(self, fetcher, session_factory, response_factory):
        body = "## 1.0.0\n- café ✓\n".encode("utf-8")
        session = session_factory(response_factory(200, chunks=[body[:5], body[5:]]))

        text = await fetcher.fetch(session, URL)

        assert text == "## 1.0.0\n- café ✓\n"
        assert session.get.call_args.args[0] == URL
        assert session.get.call_args.kwargs["headers"]["User-Agent"] == "test-agent"
        assert session.get.call_args.kwargs["timeout"].total == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 500, 503])
    async def test_non_2xx_carries_status(self, fetcher, session_factory, response_factory, status):
        session = session_factory(response_factory(status))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(session, URL)

        assert exc_info.value.status == status

    @pytest.mark.asyncio
    async def test_oversize_content_length(self, fetcher, session_factory, response_factory):
        session = session_factory(response_factory(200, chunks=[b"x"], content_length=101))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(session, URL)

        assert not fetch_policy().should_retry(exc_info.value, 0)

    @pytest.mark.asyncio
    async def test_oversize_body_without_header(self, fetcher, session_factory, response_factory):
        """Test the cap applies to the actual body, not just the header"""
        session = session_factory(response_factory(200, chunks=[b"x" * 60, b"x" * 60]))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(session, URL)

        assert exc_info.value.details["size"] == 120

    @pytest.mark.asyncio
    async def test_body_at_limit_allowed(self, fetcher, session_factory, response_factory):
        session = session_factory(response_factory(200, chunks=[b"x" * 100], content_length=100))

        assert await fetcher.fetch(session, URL) == "x" * 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [asyncio.TimeoutError(), aiohttp.ClientConnectionError("refused")]
    )
    async def test_network_errors_have_no_status(self, fetcher, session_factory, error):
        """Test timeouts and connection errors map to retryable FetchError"""
        session = session_factory(error)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(session, URL)

        assert exc_info.value.status is None
        assert fetch_policy().should_retry(exc_info.value, 0)
