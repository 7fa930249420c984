"""
Retry-with-backoff built on tenacity, parameterized per error class.

A RetryPolicy decides, for a failed attempt (zero-based index), whether to
try again and how long to wait first. with_retry() plugs a policy into
tenacity.AsyncRetrying; when the policy gives up, the last error is
re-raised unchanged.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from core import constants
from core.exceptions import FetchError, NotificationError, RateLimitError, StorageError
from core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    name: str
    should_retry: Callable[[Exception, int], bool]
    delay: Callable[[int, Optional[Exception]], float]  # Seconds
    max_attempts: int


# =============================================================================
# Fetch (changelog source)
# =============================================================================


def _fetch_should_retry(error: Exception, attempt: int) -> bool:
    if not isinstance(error, FetchError):
        return False
    # Network errors, timeouts and 5xx retry; 4xx means a bad URL
    return error.status is None or error.status >= 500


def _fetch_delay(attempt: int, error: Optional[Exception] = None) -> float:
    # 5s, 10s, 20s
    return min(constants.FETCH_BASE_DELAY * (2 ** attempt), constants.FETCH_MAX_DELAY)


def fetch_policy() -> RetryPolicy:
    return RetryPolicy(
        name="fetch",
        should_retry=_fetch_should_retry,
        delay=_fetch_delay,
        max_attempts=constants.FETCH_MAX_ATTEMPTS,
    )


# =============================================================================
# Parse (never retried: a format change needs a human)
# =============================================================================


def parse_policy() -> RetryPolicy:
    return RetryPolicy(
        name="parse",
        should_retry=lambda error, attempt: False,
        delay=lambda attempt, error=None: 0.0,
        max_attempts=1,
    )


# =============================================================================
# Notify (messaging channel)
# =============================================================================


def _notify_should_retry(error: Exception, attempt: int) -> bool:
    if isinstance(error, RateLimitError):
        return True
    if not isinstance(error, NotificationError):
        return False
    status = error.status
    if status is not None and 400 <= status < 500:
        return False
    return True


def _notify_delay(attempt: int, error: Optional[Exception] = None) -> float:
    if isinstance(error, RateLimitError) and error.retry_after:
        return float(error.retry_after)
    # 1s, 2s, 4s
    return min(constants.NOTIFY_BASE_DELAY * (2 ** attempt), constants.NOTIFY_MAX_DELAY)


def notify_policy() -> RetryPolicy:
    return RetryPolicy(
        name="notify",
        should_retry=_notify_should_retry,
        delay=_notify_delay,
        max_attempts=constants.NOTIFY_MAX_ATTEMPTS,
    )


# =============================================================================
# Storage (state persistence)
# =============================================================================


def _storage_should_retry(error: Exception, attempt: int) -> bool:
    return isinstance(error, StorageError)


def _storage_delay(attempt: int, error: Optional[Exception] = None) -> float:
    # 1s, 2s
    return (attempt + 1) * constants.STORAGE_BASE_DELAY


def storage_policy() -> RetryPolicy:
    return RetryPolicy(
        name="storage",
        should_retry=_storage_should_retry,
        delay=_storage_delay,
        max_attempts=constants.STORAGE_MAX_ATTEMPTS,
    )


# =============================================================================
# Execution
# =============================================================================


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation: str = "",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Call fn until it succeeds or the policy gives up.

    Args:
        fn: Zero-argument callable returning an awaitable for one attempt
        policy: Retry policy for the error class fn raises
        operation: Name used in log messages
        sleep: Async sleep override (tests)

    Returns:
        fn's result

    Raises:
        The last error raised by fn, unchanged
    """
    label = operation or policy.name

    def _should_retry(retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        # Cancellation and interpreter exits are never retried
        if not isinstance(error, Exception):
            return False
        return policy.should_retry(error, retry_state.attempt_number - 1)

    def _wait(retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return max(0.0, policy.delay(retry_state.attempt_number - 1, error))

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"[RETRY] {label} failed (Attempt {retry_state.attempt_number}/{policy.max_attempts}). "
            f"Retrying in {delay:.1f}s... Error: {error}"
        )

    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    # tenacity only awaits coroutine functions; fn may be a lambda returning one
    async def _attempt() -> T:
        return await fn()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        retry=_should_retry,
        wait=_wait,
        before_sleep=_before_sleep,
        reraise=True,
        **kwargs,
    )
    return await retrying(_attempt)
