"""
Telegram notification channel.
"""
import aiohttp
import asyncio
from typing import Any, Dict, Optional

from core import constants
from core.exceptions import ConfigError, NotificationError, RateLimitError
from core.logger import get_logger
from models.message import ChannelConfig
from services.notification.base import NotificationChannel

logger = get_logger(__name__)


def validate_channel_config(config: ChannelConfig) -> None:
    """
    Check the destination before any network call.

    Raises:
        ConfigError: token or chat ID missing or malformed
    """
    if config is None:
        raise ConfigError("Telegram channel configuration is missing")
    if not config.bot_token or ":" not in config.bot_token:
        raise ConfigError("TELEGRAM_TOKEN is missing or malformed")
    if not str(config.chat_id).strip():
        raise ConfigError("TELEGRAM_CHAT_ID is missing")
    if config.thread_id is not None and config.thread_id <= 0:
        raise ConfigError(
            "TELEGRAM_TOPIC_ID must be a positive integer", {"thread_id": config.thread_id}
        )


class TelegramChannel(NotificationChannel):
    """
    One sendMessage call per invocation. Retrying, rate limiting and the
    circuit breaker live in the dispatcher, not here.
    """

    def __init__(
        self,
        api_base: str = constants.TELEGRAM_API_BASE,
        timeout: int = constants.TELEGRAM_TIMEOUT,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def channel_name(self) -> str:
        return "telegram"

    def validate(self, config: ChannelConfig) -> None:
        validate_channel_config(config)

    def _build_payload(self, config: ChannelConfig, text: str) -> Dict[str, Any]:
        payload = {
            "chat_id": config.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if config.thread_id is not None:
            payload["message_thread_id"] = config.thread_id
        return payload

    @staticmethod
    async def _read_json(resp: aiohttp.ClientResponse) -> Dict[str, Any]:
        try:
            data = await resp.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    async def send_message(
        self, session: aiohttp.ClientSession, config: ChannelConfig, text: str
    ) -> Optional[int]:
        """
        Sends text to the configured chat. Returns the Telegram message ID.

        Raises:
            RateLimitError: 429, with parameters.retry_after when provided
            NotificationError: other non-2xx or ok=false (status set),
                timeout or connection failure (no status)
        """
        url = f"{self.api_base}/bot{config.bot_token}/sendMessage"
        payload = self._build_payload(config, text)

        try:
            async with session.post(url, json=payload, timeout=self.timeout) as resp:
                data = await self._read_json(resp)

                if resp.status == 429:
                    retry_after = (data.get("parameters") or {}).get("retry_after")
                    logger.warning(
                        f"[NOTIFIER] Telegram 429 (Too Many Requests). retry_after={retry_after}"
                    )
                    raise RateLimitError(
                        "Telegram rate limit exceeded",
                        retry_after=retry_after,
                        details={"description": data.get("description")},
                    )

                if resp.status < 200 or resp.status >= 300 or not data.get("ok", False):
                    description = data.get("description") or "unknown error"
                    logger.error(
                        f"[NOTIFIER] Telegram API sendMessage failed (Status {resp.status}): {description}"
                    )
                    raise NotificationError(
                        "Telegram API sendMessage failed",
                        {"status": resp.status, "description": description},
                    )

        except NotificationError:
            raise
        except asyncio.TimeoutError as e:
            raise NotificationError("Timeout sending Telegram message") from e
        except aiohttp.ClientError as e:
            raise NotificationError(
                "Telegram API request error", {"error": str(e)}
            ) from e

        message_id = (data.get("result") or {}).get("message_id")
        logger.info(f"[NOTIFIER] Telegram message sent (id={message_id})")
        return message_id
