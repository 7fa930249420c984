"""
Key-value persistence backends.

Both implement core.interfaces.IKeyValueBackend. Neither offers
transactions or compare-and-set; callers must not rely on them.
"""
import asyncio
import time
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from supabase import Client

from core.config import settings
from core.logger import get_logger
from core.utils import get_utc_now, parse_timestamp

logger = get_logger(__name__)


class InMemoryKeyValueBackend:
    """Process-local store honouring TTLs. For tests and throwaway local runs."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._data: Dict[str, Tuple[bytes, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        expires_at = self.clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (bytes(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SupabaseKeyValueBackend:
    """
    Key-value store on a Supabase (PostgREST) table.

    Expected schema:

        create table kv_store (
            key        text primary key,
            value      text not null,
            expires_at timestamptz
        );

    Expired rows are reported as absent; deleting them is left to a
    scheduled cleanup (or the next put, which overwrites the row).
    """

    def __init__(self, client: Client, table: str = None):
        self.db = client
        self.table = table or settings.STATE_TABLE

    async def _run(self, fn):
        # supabase-py is synchronous; keep the event loop free
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def get(self, key: str) -> Optional[bytes]:
        response = await self._run(
            lambda: self.db.table(self.table)
            .select("value, expires_at")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None

        row = response.data[0]
        expires_at = row.get("expires_at")
        if expires_at:
            expiry = parse_timestamp(expires_at)
            if expiry <= get_utc_now():
                logger.info(f"[KV] Key '{key}' expired at {expires_at}")
                return None

        value = row.get("value")
        return value.encode("utf-8") if value is not None else None

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        expires_at = (
            (get_utc_now() + timedelta(seconds=ttl_seconds)).isoformat() if ttl_seconds else None
        )
        data = {"key": key, "value": value.decode("utf-8"), "expires_at": expires_at}
        await self._run(lambda: self.db.table(self.table).upsert(data).execute())

    async def delete(self, key: str) -> None:
        await self._run(lambda: self.db.table(self.table).delete().eq("key", key).execute())
