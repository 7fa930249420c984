import time
from typing import Optional

from supabase import Client, create_client

from .config import settings
from .exceptions import ConfigError, StorageError
from .logger import get_logger

logger = get_logger(__name__)


class Database:
    """
    Process-wide Supabase client for the key-value state table.

    The client is created lazily so the memory backend never needs
    Supabase credentials.
    """

    _client: Optional[Client] = None

    @classmethod
    def get_client(cls, max_retries: int = 3) -> Client:
        """
        Raises:
            ConfigError: SUPABASE_URL / SUPABASE_KEY not set
            StorageError: client could not be created after max_retries
        """
        if cls._client is not None:
            return cls._client

        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            raise ConfigError("SUPABASE_URL and SUPABASE_KEY are required for the supabase backend")

        last_error = None
        for attempt in range(1, max_retries + 1):
            try:
                cls._client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
            except Exception as e:
                last_error = e
                logger.error(f"[DB] Supabase client attempt {attempt}/{max_retries} failed: {e}")
                if attempt < max_retries:
                    time.sleep(2 ** attempt)
                continue

            logger.info(f"[DB] Supabase client ready (attempt {attempt}/{max_retries})")
            return cls._client

        raise StorageError("Could not create Supabase client", {"error": str(last_error)}) from last_error

    @classmethod
    def health_check(cls) -> bool:
        """True if the state table answers a trivial select."""
        try:
            cls.get_client().table(settings.STATE_TABLE).select("key").limit(1).execute()
        except Exception as e:
            logger.error(f"[DB] Health check on '{settings.STATE_TABLE}' failed: {e}")
            return False
        return True

    @classmethod
    def reset(cls):
        cls._client = None
