"""
Check-and-notify workflow.

    IDLE -> INITIALIZING -> IDLE                                (first run)
    IDLE -> CHECKING -> NO_CHANGE -> IDLE
    IDLE -> CHECKING -> PENDING_NOTIFY -> NOTIFYING -> NOTIFIED -> IDLE

lastVersion only advances after a successful dispatch, so a failed run is
simply re-attempted by the next scheduled run. Concurrent runs are not
locked against each other; both may notify the same release.
"""
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from core import constants
from core.circuit_breaker import CircuitBreakerRegistry
from core.config import Settings, settings
from core.database import Database
from core.exceptions import ParseError
from core.interfaces import IChangelogSource, IKeyValueBackend, INotificationDispatcher
from core.logger import get_logger
from core.performance import PerformanceMonitor
from core.rate_limiter import SlidingWindowRateLimiter
from core.retry import fetch_policy, with_retry
from core.utils import get_utc_now
from models.message import ChannelConfig
from models.state import PersistedState, RunOutcome, RunResult
from models.version import Version
from parsers import semver
from parsers.changelog_parser import parse_changelog
from repositories.kv_backend import InMemoryKeyValueBackend, SupabaseKeyValueBackend
from repositories.state_repo import StateStore
from services.changelog_fetcher import ChangelogFetcher
from services.notification.dispatcher import NotificationDispatcher
from services.notification.formatters import create_notification_message
from services.notification.telegram import TelegramChannel

logger = get_logger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    CHECKING = "checking"
    NO_CHANGE = "no_change"
    PENDING_NOTIFY = "pending_notify"
    NOTIFYING = "notifying"
    NOTIFIED = "notified"


class VersionMonitor:
    def __init__(
        self,
        fetcher: IChangelogSource,
        state_store: StateStore,
        dispatcher: INotificationDispatcher,
        breakers: CircuitBreakerRegistry,
        channel_config: ChannelConfig,
        changelog_url: str = constants.DEFAULT_CHANGELOG_URL,
        project_name: str = constants.DEFAULT_PROJECT_NAME,
        keep_empty_versions: bool = False,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        performance: Optional[PerformanceMonitor] = None,
    ):
        self.fetcher = fetcher
        self.state_store = state_store
        self.dispatcher = dispatcher
        self.breakers = breakers
        self.channel_config = channel_config
        self.changelog_url = changelog_url
        self.project_name = project_name
        self.keep_empty_versions = keep_empty_versions
        self.sleep = sleep
        self.performance = performance or PerformanceMonitor()
        # Most recent transition of any in-flight run
        self.state = MonitorState.IDLE
        self.active_runs = 0

    def _transition(self, new_state: MonitorState):
        logger.debug(f"[MONITOR] {self.state.value} -> {new_state.value}")
        self.state = new_state

    async def _fetch_latest(self, session: aiohttp.ClientSession) -> Version:
        with self.performance.measure("changelog_fetch", {"url": self.changelog_url}):
            markdown = await self.breakers.changelog.execute(
                lambda: with_retry(
                    lambda: self.fetcher.fetch(session, self.changelog_url),
                    fetch_policy(),
                    operation="changelog fetch",
                    sleep=self.sleep,
                )
            )

        try:
            data = parse_changelog(markdown, keep_empty_versions=self.keep_empty_versions)
        except ParseError as e:
            logger.critical(
                f"[MONITOR] Changelog could not be parsed, upstream format may have changed: {e}",
                context={"url": self.changelog_url},
            )
            raise

        if data.latest is None:
            raise ParseError("Changelog has no latest version", {"url": self.changelog_url})
        return data.latest

    async def _run(self, session: aiohttp.ClientSession) -> RunResult:
        with self.performance.measure("state_read"):
            state = await self.state_store.get()

        if state is None:
            self._transition(MonitorState.INITIALIZING)
            latest = await self._fetch_latest(session)
            await self.state_store.initialize(latest.number)
            logger.info(
                f"[MONITOR] First run: recorded v{latest.number} without notifying"
            )
            return RunResult(outcome=RunOutcome.INITIALIZED, latest_version=latest.number)

        self._transition(MonitorState.CHECKING)
        latest = await self._fetch_latest(session)
        previous = state.last_version

        if not semver.is_newer(latest.number, previous):
            self._transition(MonitorState.NO_CHANGE)
            await self.state_store.set(state.model_copy(update={"last_check_time": get_utc_now()}))
            logger.info(f"[MONITOR] No new version (latest v{latest.number}, known v{previous})")
            return RunResult(
                outcome=RunOutcome.NO_CHANGE,
                latest_version=latest.number,
                previous_version=previous,
            )

        self._transition(MonitorState.PENDING_NOTIFY)
        logger.info(f"[MONITOR] New version detected: v{previous} -> v{latest.number}")
        message = create_notification_message(latest, self.changelog_url, self.project_name)

        self._transition(MonitorState.NOTIFYING)
        with self.performance.measure("notify", {"version": latest.number}):
            await self.dispatcher.send(self.channel_config, message, session=session)

        self._transition(MonitorState.NOTIFIED)
        now = get_utc_now()
        await self.state_store.set(
            PersistedState(
                last_version=latest.number,
                last_check_time=now,
                last_notification_time=now,
            )
        )
        return RunResult(
            outcome=RunOutcome.NOTIFIED,
            latest_version=latest.number,
            previous_version=previous,
        )

    async def run(self, session: Optional[aiohttp.ClientSession] = None) -> RunResult:
        """
        One check-and-notify pass.

        Errors other than a corrupt or missing state record propagate so the
        scheduler counts the run as failed. Cancellation propagates unchanged.
        Overlapping runs share self.state; it returns to IDLE once the last
        in-flight run finishes.
        """
        start = time.perf_counter()
        self.active_runs += 1
        try:
            with self.performance.measure("monitor_run"):
                if session is not None:
                    result = await self._run(session)
                else:
                    async with aiohttp.ClientSession() as own_session:
                        result = await self._run(own_session)
        finally:
            self.active_runs -= 1
            if self.active_runs == 0:
                self._transition(MonitorState.IDLE)

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"[MONITOR] Run finished: {result.outcome.value}",
            duration_ms=result.duration_ms,
            context={"latest": result.latest_version, "previous": result.previous_version},
        )
        return result

    def health(self) -> Dict[str, Dict[str, Any]]:
        """Breaker snapshots for the diagnostics surface."""
        return {
            name: snapshot.model_dump(mode="json")
            for name, snapshot in self.breakers.snapshot().items()
        }


def create_backend(cfg: Settings) -> IKeyValueBackend:
    if cfg.STATE_BACKEND == "memory":
        logger.warning("[STATE] Using in-memory backend; state is lost on restart")
        return InMemoryKeyValueBackend()
    return SupabaseKeyValueBackend(Database.get_client(), cfg.STATE_TABLE)


def create_monitor(
    cfg: Settings = settings,
    backend: Optional[IKeyValueBackend] = None,
    breakers: Optional[CircuitBreakerRegistry] = None,
) -> VersionMonitor:
    """Wire a VersionMonitor from settings. Breakers live as long as the monitor."""
    breakers = breakers or CircuitBreakerRegistry()
    state_store = StateStore(
        backend or create_backend(cfg),
        breakers.storage,
        key=cfg.STATE_KEY,
        ttl_seconds=cfg.STATE_TTL_SECONDS,
    )
    dispatcher = NotificationDispatcher(
        TelegramChannel(),
        SlidingWindowRateLimiter(),
        breakers.telegram,
        max_notes=cfg.NOTIFICATION_MAX_NOTES,
    )
    channel_config = ChannelConfig(
        bot_token=cfg.TELEGRAM_TOKEN or "",
        chat_id=cfg.TELEGRAM_CHAT_ID or "",
        thread_id=cfg.TELEGRAM_TOPIC_ID,
    )
    return VersionMonitor(
        fetcher=ChangelogFetcher(
            timeout=cfg.FETCH_TIMEOUT,
            max_bytes=cfg.MAX_CHANGELOG_BYTES,
            user_agent=cfg.USER_AGENT,
        ),
        state_store=state_store,
        dispatcher=dispatcher,
        breakers=breakers,
        channel_config=channel_config,
        changelog_url=cfg.CHANGELOG_URL,
        project_name=cfg.PROJECT_NAME,
    )
