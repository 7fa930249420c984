"""
Notification System - Strategy Pattern Implementation

This module defines the abstract interface for notification channels.
The dispatcher talks only to this interface, so another channel can be
added without touching the resilience wiring.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from models.message import ChannelConfig


class NotificationChannel(ABC):
    """
    Abstract base class for notification channels (Strategy Pattern).

    Implementations perform exactly one wire call per send_message and
    raise NotificationError (or RateLimitError) on failure.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Returns the name of this notification channel (e.g., 'telegram')."""
        pass

    @abstractmethod
    def validate(self, config: ChannelConfig) -> None:
        """Raises ConfigError if config cannot be used with this channel."""
        pass

    @abstractmethod
    async def send_message(
        self, session: aiohttp.ClientSession, config: ChannelConfig, text: str
    ) -> Optional[Any]:
        """
        Send already-rendered text through this channel.

        Returns:
            Platform-specific message ID if known
        """
        pass
