"""
Protocol-based interfaces for Dependency Injection.
These interfaces define contracts for the external collaborators, so tests
and alternative deployments can swap implementations.
"""
from typing import Protocol, Optional, runtime_checkable
import aiohttp

from models.message import ChannelConfig, NotificationMessage


@runtime_checkable
class IKeyValueBackend(Protocol):
    """Interface for the persistence backend (a TTL key-value store)."""

    async def get(self, key: str) -> Optional[bytes]:
        """Returns the stored value, or None if absent or expired."""
        ...

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Stores value under key; the backend may evict it after ttl_seconds."""
        ...

    async def delete(self, key: str) -> None:
        """Removes key if present."""
        ...


@runtime_checkable
class IChangelogSource(Protocol):
    """Interface for fetching the raw changelog document."""

    async def fetch(self, session: aiohttp.ClientSession, url: str) -> str:
        """Returns the changelog text."""
        ...


@runtime_checkable
class INotificationDispatcher(Protocol):
    """Interface for delivering a release notification."""

    async def send(
        self,
        config: ChannelConfig,
        message: NotificationMessage,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Sends the message; raises on failure."""
        ...
