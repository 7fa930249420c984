import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Optional

from core.logger import get_logger
from core.utils import get_utc_now

logger = get_logger(__name__)

HISTORY_SIZE = 100  # Durations kept per operation


@dataclass
class OperationStats:
    success_count: int = 0
    failure_count: int = 0
    last_error: Optional[str] = None
    last_run_at: Optional[datetime] = None
    durations_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=HISTORY_SIZE))

    @property
    def count(self) -> int:
        return self.success_count + self.failure_count

    def as_dict(self) -> Dict:
        durations = list(self.durations_ms)
        return {
            "count": self.count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success_rate": self.success_count / self.count * 100 if self.count else 0.0,
            "avg_duration_ms": sum(durations) / len(durations) if durations else 0.0,
            "max_duration_ms": max(durations) if durations else 0.0,
            "last_error": self.last_error,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }


class PerformanceMonitor:
    """Durations and outcomes of the monitor's steps (fetch, state read, notify, run)."""

    def __init__(self):
        self.operations: Dict[str, OperationStats] = {}

    @contextmanager
    def measure(self, operation_name: str, context: Optional[Dict] = None):
        """
        Context manager to measure operation duration.

        Usage:
            with monitor.measure("changelog_fetch", {"url": url}):
                markdown = await fetcher.fetch(session, url)

        Cancellation counts as a failure of the step, then propagates.
        """
        stats = self.operations.setdefault(operation_name, OperationStats())
        start_time = time.perf_counter()
        error = None

        try:
            yield
        except BaseException as e:
            error = e
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            stats.durations_ms.append(duration_ms)
            stats.last_run_at = get_utc_now()

            if error is None:
                stats.success_count += 1
                logger.debug(f"{operation_name} completed", duration_ms=duration_ms, context=context or {})
            else:
                stats.failure_count += 1
                stats.last_error = type(error).__name__
                logger.warning(
                    f"{operation_name} failed: {stats.last_error}",
                    duration_ms=duration_ms,
                    context=context or {},
                )

    def get_all_stats(self) -> Dict[str, Dict]:
        return {name: stats.as_dict() for name, stats in self.operations.items()}

    def log_summary(self):
        """Log performance summary for all operations"""
        if not self.operations:
            logger.info("No performance metrics collected yet")
            return

        logger.info("=" * 60)
        logger.info("PERFORMANCE SUMMARY")
        logger.info("=" * 60)
        for name, stats in self.get_all_stats().items():
            logger.info(
                f"{name}: {stats['count']} runs, {stats['success_rate']:.1f}% success, "
                f"avg {stats['avg_duration_ms']:.0f}ms (max {stats['max_duration_ms']:.0f}ms)"
            )
        logger.info("=" * 60)
