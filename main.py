import argparse
import asyncio
import json
import signal
import sys

# Logging comes up before settings so config errors are captured
from core.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

try:
    from core.config import settings
except Exception as e:
    logger.critical(f"Failed to load configuration: {e}", exc_info=True)
    sys.exit(1)

from core.database import Database
from core.exceptions import BotException, CircuitOpenError, ConfigError, FetchError, ParseError
from services.health_server import HealthServer
from services.monitor_service import VersionMonitor, create_monitor

MAX_CONSECUTIVE_FAILURES = 5


class ReleaseNotifier:
    """Host process around VersionMonitor: one-shot, daemon loop or HTTP trigger."""

    def __init__(self, monitor: VersionMonitor = None):
        self.monitor = monitor or create_monitor(settings)
        self.running = True
        self.failures = 0
        self._sleep_task = None

    def validate_startup(self) -> bool:
        banner = "-" * 60
        logger.info(banner)
        logger.info(f"Release notifier for {settings.PROJECT_NAME}")
        logger.info(f"  changelog={settings.CHANGELOG_URL}")
        logger.info(f"  interval={settings.CHECK_INTERVAL}s backend={settings.STATE_BACKEND}")
        logger.info(banner)

        for msg in settings.validate_all():
            (logger.critical if "❌" in msg else logger.warning)(msg)

        try:
            settings.require_valid()
        except ConfigError as e:
            logger.critical(f"Configuration invalid: {e}")
            return False

        if settings.STATE_BACKEND == "supabase" and not Database.health_check():
            logger.critical("Supabase state table unreachable")
            return False

        logger.info("[OK] Configuration and backend ready")
        return True

    async def run_once(self):
        return await asyncio.wait_for(self.monitor.run(), timeout=settings.RUN_TIMEOUT)

    def _install_signal_handlers(self):
        try:
            if sys.platform == "win32":
                for sig in (signal.SIGINT, signal.SIGTERM):
                    signal.signal(sig, lambda s, f: self.stop())
                return
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.stop)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            logger.warning(f"Signal handlers unavailable: {e}")

    def _record_failure(self, kind: str, error: BaseException) -> bool:
        """Count a failed run. Returns False once the loop should give up."""
        self.failures += 1
        progress = f"{self.failures}/{MAX_CONSECUTIVE_FAILURES}"
        if kind == "unexpected":
            logger.critical(f"Unexpected failure ({progress}): {error}", exc_info=True)
        else:
            logger.error(f"{kind} failure ({progress}): {type(error).__name__}: {error}")
        return self.failures < MAX_CONSECUTIVE_FAILURES or kind != "unexpected"

    async def _idle(self) -> bool:
        logger.info(f"Next check in {settings.CHECK_INTERVAL}s")
        self._sleep_task = asyncio.ensure_future(asyncio.sleep(settings.CHECK_INTERVAL))
        try:
            await self._sleep_task
            return True
        except asyncio.CancelledError:
            return False
        finally:
            self._sleep_task = None

    async def start(self):
        self._install_signal_handlers()
        logger.info("Daemon loop started (Ctrl+C to stop)")

        while self.running:
            keep_going = True
            try:
                await self.run_once()
                self.failures = 0
            except asyncio.TimeoutError as e:
                keep_going = self._record_failure(f"Timeout ({settings.RUN_TIMEOUT}s)", e)
            except ParseError as e:
                # The monitor already logged this at CRITICAL
                keep_going = self._record_failure("Parse", e)
            except (FetchError, CircuitOpenError) as e:
                keep_going = self._record_failure("Network", e)
            except BotException as e:
                keep_going = self._record_failure("Run", e)
            except Exception as e:
                keep_going = self._record_failure("unexpected", e)

            if not keep_going:
                logger.critical("Giving up after repeated unexpected failures")
                break
            if self.running and not await self._idle():
                break

        self.stop()
        self.monitor.performance.log_summary()
        logger.info("Daemon loop exited")

    async def serve(self):
        """Run the health/trigger server alongside the daemon loop."""
        server = HealthServer(self.monitor)
        await server.start()
        try:
            await self.start()
        finally:
            await server.stop()

    def stop(self):
        if self.running:
            logger.info("Shutdown requested")
            self.running = False
        if self._sleep_task is not None and not self._sleep_task.done():
            self._sleep_task.cancel()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Changelog Release Notifier")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Check once and exit")
    mode.add_argument(
        "--serve",
        action="store_true",
        help="Daemon loop plus the /health and /run HTTP endpoints",
    )
    mode.add_argument(
        "--health",
        action="store_true",
        help="Print circuit breaker snapshots as JSON and exit",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        notifier = ReleaseNotifier()
    except BotException as e:
        logger.critical(f"Could not build monitor: {e}")
        return 1

    if args.health:
        print(json.dumps(notifier.monitor.health(), indent=2))
        return 0

    if not notifier.validate_startup():
        return 1

    if args.once:
        try:
            result = asyncio.run(notifier.run_once())
        except asyncio.TimeoutError:
            logger.critical(f"Check exceeded {settings.RUN_TIMEOUT}s and was cancelled")
            return 1
        except Exception as e:
            logger.critical(f"Check failed: {e}", exc_info=True)
            return 1
        logger.info(f"Check finished: {result.outcome.value}")
        return 0

    try:
        asyncio.run(notifier.serve() if args.serve else notifier.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as e:
        logger.critical(f"Fatal: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
