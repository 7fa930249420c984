"""
Health check and manual-trigger HTTP server.

    GET  /health  -> circuit breaker snapshots
    POST /run     -> one monitor run, result or error as JSON
"""
import asyncio
from typing import Optional

from aiohttp import web

from core.config import settings
from core.exceptions import BotException
from core.logger import get_logger
from core.utils import get_utc_now
from services.monitor_service import VersionMonitor

logger = get_logger(__name__)


class HealthServer:
    """HTTP server exposing the monitor's diagnostics and run trigger."""

    def __init__(
        self,
        monitor: VersionMonitor,
        host: str = None,
        port: int = None,
        run_timeout: float = None,
    ):
        self.monitor = monitor
        self.host = host if host is not None else settings.HEALTH_HOST
        self.port = port if port is not None else settings.HEALTH_PORT
        self.run_timeout = run_timeout if run_timeout is not None else settings.RUN_TIMEOUT

        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self.start_time = get_utc_now()

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.health_handler)
        app.router.add_post("/run", self.run_handler)
        return app

    async def start(self) -> None:
        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()
        logger.info(f"[HEALTH] Listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
        logger.info("[HEALTH] Server stopped")

    async def health_handler(self, request: web.Request) -> web.Response:
        breakers = self.monitor.health()
        degraded = any(b["state"] != "closed" for b in breakers.values())
        return web.json_response(
            {
                "status": "degraded" if degraded else "healthy",
                "monitor_state": self.monitor.state.value,
                "active_runs": self.monitor.active_runs,
                "uptime_seconds": (get_utc_now() - self.start_time).total_seconds(),
                "breakers": breakers,
                "metrics": self.monitor.performance.get_all_stats(),
                "timestamp": get_utc_now().isoformat(),
            }
        )

    async def run_handler(self, request: web.Request) -> web.Response:
        logger.info("[HEALTH] Manual run triggered")
        try:
            result = await asyncio.wait_for(self.monitor.run(), timeout=self.run_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[HEALTH] Manual run exceeded {self.run_timeout}s")
            return web.json_response(
                {"ok": False, "error": "Timeout", "message": f"Run exceeded {self.run_timeout}s"},
                status=504,
            )
        except BotException as e:
            logger.error(f"[HEALTH] Manual run failed: {type(e).__name__}: {e}")
            return web.json_response(
                {"ok": False, "error": type(e).__name__, "message": e.message},
                status=500,
            )

        return web.json_response({"ok": True, "result": result.model_dump(mode="json")})
