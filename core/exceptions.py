"""
Custom exception hierarchy for the changelog release notifier.
Each external dependency has its own error class so retry policies
can be selected per error class.
"""
from typing import Optional


class BotException(Exception):
    """Base exception for all bot-related errors."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# =============================================================================
# Changelog Exceptions
# =============================================================================


class FetchError(BotException):
    """
    Network/HTTP failure fetching the changelog.
    Retryable when no status is known (timeout, connection reset) or on 5xx.
    """

    @property
    def status(self) -> Optional[int]:
        return self.details.get("status")


class ParseError(BotException):
    """Malformed changelog or invalid semantic version. Never retried."""

    pass


# =============================================================================
# Persistence Exceptions
# =============================================================================


class StorageError(BotException):
    """Failure reading or writing the persisted state."""

    pass


# =============================================================================
# Notification Exceptions
# =============================================================================


class NotificationError(BotException):
    """Failure delivering a message through the messaging channel."""

    @property
    def status(self) -> Optional[int]:
        return self.details.get("status")


class RateLimitError(NotificationError):
    """Channel answered 429; retry_after is the server-provided hint in seconds."""

    def __init__(self, message: str, retry_after: Optional[float] = None, details: dict = None):
        details = dict(details or {})
        details.setdefault("status", 429)
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, details)
        self.retry_after = retry_after


# =============================================================================
# Resilience / Programming Exceptions
# =============================================================================


class ValidationError(BotException):
    """Malformed input handed to a component. Never retried."""

    pass


class CircuitOpenError(BotException):
    """A dependency is presumed unhealthy; the call was not attempted."""

    pass


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(BotException):
    """Missing or invalid required setting. Fatal for the run."""

    pass
