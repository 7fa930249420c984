import aiohttp
import asyncio
from typing import Optional

from core.config import settings
from core.exceptions import FetchError
from core.logger import get_logger

logger = get_logger(__name__)


class ChangelogFetcher:
    """
    Handles network operations for fetching the raw changelog document.

    Errors are mapped onto FetchError so the fetch retry policy can tell
    transient failures (no status, 5xx) from permanent ones (4xx, oversize).
    """

    def __init__(
        self,
        timeout: Optional[int] = None,
        max_bytes: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.FETCH_TIMEOUT)
        self.max_bytes = max_bytes or settings.MAX_CHANGELOG_BYTES
        self.headers = {
            "User-Agent": user_agent or settings.USER_AGENT,
            "Accept": "text/markdown,text/plain;q=0.9,*/*;q=0.8",
        }

    def _too_large(self, url: str, size: int) -> FetchError:
        # status=200 keeps the fetch policy from retrying an oversize document
        return FetchError(
            f"Changelog exceeds {self.max_bytes} bytes",
            {"url": url, "status": 200, "size": size},
        )

    async def fetch(self, session: aiohttp.ClientSession, url: str) -> str:
        """
        Fetches the changelog as UTF-8 text.

        Raises:
            FetchError: non-2xx (status set), oversize body, timeout or
                connection failure (no status)
        """
        try:
            async with session.get(url, headers=self.headers, timeout=self.timeout) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise FetchError(
                        f"HTTP {resp.status} fetching changelog",
                        {"url": url, "status": resp.status},
                    )

                if resp.content_length is not None and resp.content_length > self.max_bytes:
                    raise self._too_large(url, resp.content_length)

                body = bytearray()
                async for chunk in resp.content.iter_chunked(64 * 1024):
                    body.extend(chunk)
                    if len(body) > self.max_bytes:
                        raise self._too_large(url, len(body))

        except FetchError:
            raise
        except asyncio.TimeoutError as e:
            raise FetchError(f"Timeout fetching {url}", {"url": url}) from e
        except aiohttp.ClientError as e:
            raise FetchError(
                f"HTTP error fetching {url}", {"url": url, "error": str(e)}
            ) from e

        logger.info(f"[FETCHER] Fetched changelog ({len(body)} bytes)", context={"url": url})
        return body.decode("utf-8", errors="replace")
