import aiohttp
from typing import Awaitable, Callable, Optional

from core import constants
from core.circuit_breaker import CircuitBreaker
from core.logger import get_logger
from core.rate_limiter import SlidingWindowRateLimiter
from core.retry import notify_policy, with_retry
from models.message import ChannelConfig, NotificationMessage
from services.notification.base import NotificationChannel
from services.notification.formatters import format_telegram_notification

logger = get_logger(__name__)


class NotificationDispatcher:
    """
    Renders a release message and delivers it through the channel.

    Wrapping order for the wire call:
        rate_limiter.acquire() -> breaker.execute(...) -> with_retry(..., notify_policy)

    The limiter slot is taken once per send, not per retry attempt.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        rate_limiter: SlidingWindowRateLimiter,
        breaker: CircuitBreaker,
        max_notes: int = constants.DEFAULT_MAX_NOTES,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.channel = channel
        self.rate_limiter = rate_limiter
        self.breaker = breaker
        self.max_notes = max_notes
        self.sleep = sleep

    def render(self, message: NotificationMessage) -> str:
        return format_telegram_notification(message, self.max_notes)

    async def _deliver(self, session: aiohttp.ClientSession, config: ChannelConfig, text: str):
        await self.rate_limiter.acquire()
        return await self.breaker.execute(
            lambda: with_retry(
                lambda: self.channel.send_message(session, config, text),
                notify_policy(),
                operation=f"{self.channel.channel_name} send",
                sleep=self.sleep,
            )
        )

    async def send(
        self,
        config: ChannelConfig,
        message: NotificationMessage,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Send a release notification.

        Raises:
            ConfigError: invalid channel configuration
            ValidationError: message lacks a version
            NotificationError / RateLimitError: delivery failed after retries
            CircuitOpenError: channel breaker is open
        """
        self.channel.validate(config)
        text = self.render(message)

        logger.info(
            f"[NOTIFIER] Dispatching v{message.version} via {self.channel.channel_name}",
            context={"notes": len(message.notes), "length": len(text)},
        )

        if session is not None:
            await self._deliver(session, config, text)
            return

        async with aiohttp.ClientSession() as own_session:
            await self._deliver(own_session, config, text)
