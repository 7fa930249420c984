"""
Circuit breakers for the external dependencies.

    CLOSED --failures >= threshold--> OPEN --timeout elapsed--> HALF_OPEN
    HALF_OPEN --probe succeeds--> CLOSED
    HALF_OPEN --probe fails--> OPEN (timer restarted)

Breakers are plain objects owned by a CircuitBreakerRegistry that the host
constructs and hands to the components. Nothing here is a module global, so
a fresh process (or a test) starts with fresh, CLOSED breakers.
"""
import time
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import BaseModel

from core import constants
from core.exceptions import CircuitOpenError
from core.logger import get_logger
from core.utils import get_utc_now

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerSnapshot(BaseModel):
    """Read-only view of a breaker for diagnostics."""

    name: str
    state: CircuitState
    consecutive_failures: int
    last_failure_time: Optional[datetime] = None
    threshold: int
    timeout: float


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        threshold: int = 5,
        timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.threshold = threshold
        self.timeout = timeout
        self.clock = clock

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.last_failure_time: Optional[float] = None  # clock() value
        self.last_failure_at: Optional[datetime] = None  # wall time, diagnostics only
        self._probe_in_flight = False

    def _transition(self, new_state: CircuitState):
        if new_state is self.state:
            return
        old_state = self.state
        self.state = new_state
        log = logger.error if new_state is CircuitState.OPEN else logger.info
        log(
            f"[BREAKER] {self.name}: {old_state.value} -> {new_state.value}",
            context={"failures": self.consecutive_failures, "threshold": self.threshold},
        )

    def _reject(self):
        raise CircuitOpenError(
            f"Circuit breaker is open for {self.name}. Too many failures.",
            {"breaker": self.name, "failures": self.consecutive_failures},
        )

    def _admit(self) -> bool:
        """Decide whether a call may proceed. Returns True if it is the recovery probe."""
        if self.state is CircuitState.OPEN:
            if self.clock() - self.last_failure_time < self.timeout:
                self._reject()
            self._transition(CircuitState.HALF_OPEN)

        if self.state is CircuitState.HALF_OPEN:
            # Exactly one probe at a time
            if self._probe_in_flight:
                self._reject()
            self._probe_in_flight = True
            return True

        return False

    def _on_success(self):
        self.consecutive_failures = 0
        self._transition(CircuitState.CLOSED)

    def _on_failure(self):
        self.consecutive_failures += 1
        self.last_failure_time = self.clock()
        self.last_failure_at = get_utc_now()

        if self.state is CircuitState.HALF_OPEN or self.consecutive_failures >= self.threshold:
            self._transition(CircuitState.OPEN)

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn under breaker protection.

        Raises:
            CircuitOpenError: if the breaker is open (fn is not called)
            Whatever fn raises, after recording the failure
        """
        probing = self._admit()
        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise
        finally:
            if probing:
                self._probe_in_flight = False

        self._on_success()
        return result

    def reset(self):
        self.consecutive_failures = 0
        self.last_failure_time = None
        self.last_failure_at = None
        self._probe_in_flight = False
        self.state = CircuitState.CLOSED
        logger.info(f"[BREAKER] {self.name}: reset")

    def snapshot(self) -> CircuitBreakerSnapshot:
        return CircuitBreakerSnapshot(
            name=self.name,
            state=self.state,
            consecutive_failures=self.consecutive_failures,
            last_failure_time=self.last_failure_at,
            threshold=self.threshold,
            timeout=self.timeout,
        )


class CircuitBreakerRegistry:
    """One breaker per external dependency (changelog, telegram, storage)."""

    def __init__(
        self,
        settings: Optional[Dict[str, tuple]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = settings or constants.CIRCUIT_BREAKER_SETTINGS
        self._breakers: Dict[str, CircuitBreaker] = {
            name: CircuitBreaker(name, threshold=threshold, timeout=timeout, clock=clock)
            for name, (threshold, timeout) in settings.items()
        }

    @property
    def changelog(self) -> CircuitBreaker:
        return self._breakers[constants.BREAKER_CHANGELOG]

    @property
    def telegram(self) -> CircuitBreaker:
        return self._breakers[constants.BREAKER_TELEGRAM]

    @property
    def storage(self) -> CircuitBreaker:
        return self._breakers[constants.BREAKER_STORAGE]

    def snapshot(self) -> Dict[str, CircuitBreakerSnapshot]:
        return {name: breaker.snapshot() for name, breaker in self._breakers.items()}

    def reset_all(self):
        for breaker in self._breakers.values():
            breaker.reset()
