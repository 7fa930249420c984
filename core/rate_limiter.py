import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from core import constants
from core.logger import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Allows at most max_calls acquisitions in any sliding window of period seconds.

    acquire() waits for a free slot instead of rejecting. Sends are rare, so
    blocking the caller is acceptable and never drops a notification.
    """

    def __init__(
        self,
        max_calls: int = constants.RATE_LIMIT_MAX_CALLS,
        period: float = constants.RATE_LIMIT_PERIOD,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_calls = max_calls
        self.period = period
        self.clock = clock
        self.sleep = sleep
        self._calls: Deque[float] = deque()
        # Created on first acquire so it binds to the running loop
        self._lock: Optional[asyncio.Lock] = None

    def _evict_expired(self, now: float):
        while self._calls and now - self._calls[0] >= self.period:
            self._calls.popleft()

    @property
    def available(self) -> int:
        self._evict_expired(self.clock())
        return self.max_calls - len(self._calls)

    async def acquire(self):
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            while True:
                now = self.clock()
                self._evict_expired(now)

                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    return

                wait_time = self.period - (now - self._calls[0])
                logger.info(f"[RATE_LIMIT] Limit reached, waiting {wait_time:.1f}s")
                await self.sleep(wait_time)
