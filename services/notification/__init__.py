"""
Notification package: Telegram channel, HTML formatters and the
resilience-wrapped dispatcher.
"""

from services.notification import formatters
from services.notification.dispatcher import NotificationDispatcher
from services.notification.telegram import TelegramChannel, validate_channel_config

__all__ = ["formatters", "NotificationDispatcher", "TelegramChannel", "validate_channel_config"]
