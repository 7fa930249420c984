import asyncio
import json
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from core import constants
from core.circuit_breaker import CircuitBreaker
from core.exceptions import StorageError
from core.interfaces import IKeyValueBackend
from core.logger import get_logger
from core.retry import storage_policy, with_retry
from core.utils import get_utc_now
from models.state import PersistedState

logger = get_logger(__name__)

T = TypeVar("T")


class StateStore:
    """
    Owns the single PersistedState record.

    Every backend call is retried under the storage policy inside the
    storage circuit breaker. A record that fails structural validation is
    reported as absent so the next run re-initializes instead of failing.
    """

    def __init__(
        self,
        backend: IKeyValueBackend,
        breaker: CircuitBreaker,
        key: str = constants.STATE_KEY,
        ttl_seconds: int = constants.STATE_TTL_SECONDS,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        timeout: float = constants.STORAGE_TIMEOUT,
    ):
        self.backend = backend
        self.breaker = breaker
        self.key = key
        self.ttl_seconds = ttl_seconds
        self.sleep = sleep
        self.timeout = timeout

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        async def attempt() -> T:
            try:
                return await asyncio.wait_for(fn(), timeout=self.timeout)
            except StorageError:
                raise
            except asyncio.TimeoutError as e:
                raise StorageError(
                    f"State {operation} timed out after {self.timeout}s", {"key": self.key}
                ) from e
            except Exception as e:
                raise StorageError(
                    f"State {operation} failed", {"key": self.key, "error": str(e)}
                ) from e

        return await self.breaker.execute(
            lambda: with_retry(attempt, storage_policy(), operation=f"state {operation}", sleep=self.sleep)
        )

    def _decode(self, raw: bytes) -> Optional[PersistedState]:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"[STATE] Stored record is not valid JSON, treating as first run: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(
                f"[STATE] Stored record is not an object ({type(data).__name__}), treating as first run"
            )
            return None

        try:
            return PersistedState.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(
                "[STATE] Stored record failed validation, treating as first run",
                context={"errors": e.error_count()},
            )
            return None

    async def get(self) -> Optional[PersistedState]:
        """
        Returns the persisted state, or None when absent, expired or corrupt.

        Raises:
            StorageError: backend failed on every attempt
            CircuitOpenError: storage breaker is open
        """
        raw = await self._call("read", lambda: self.backend.get(self.key))
        if raw is None:
            return None
        return self._decode(raw)

    async def set(self, state: PersistedState):
        payload = state.to_json().encode("utf-8")
        await self._call("write", lambda: self.backend.put(self.key, payload, self.ttl_seconds))
        logger.info(
            f"[STATE] Saved lastVersion={state.last_version}",
            context={"notified": state.last_notification_time is not None},
        )

    async def initialize(self, version: str) -> PersistedState:
        """Writes the first-run record: version, check time now, never notified."""
        state = PersistedState(last_version=version, last_check_time=get_utc_now())
        await self.set(state)
        return state

    async def is_first_run(self) -> bool:
        return await self.get() is None
