"""
Read-only HTTP surface for health probes and stats.

GET /health -> liveness plus headline counters
GET /stats  -> full status document
"""

import json
import time
from typing import Any, Callable, Optional

from aiohttp import web

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .logger import Logger


StatusProvider = Callable[[], dict[str, Any]]


class HealthServer:
    """Serves the bot's status over HTTP."""

    def __init__(
        self,
        status_provider: StatusProvider,
        port: int = 8080,
        host: str = "0.0.0.0",
        logger: Optional["Logger"] = None,
    ):
        self.status_provider = status_provider
        self.port = port
        self.host = host
        self.logger = logger
        self._runner: Optional[web.AppRunner] = None
        self._started_at = time.time()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health)
        app.router.add_get("/stats", self._stats)
        return app

    async def _health(self, request: web.Request) -> web.Response:
        status = self.status_provider()
        return web.json_response(
            {
                "status": "healthy" if status.get("running") else "stopped",
                "uptime_seconds": time.time() - self._started_at,
                "ws_connected": status.get("ws_connected", False),
                "active_opportunities": status.get("active_opportunities", 0),
                "in_flight_executions": status.get("in_flight_executions", 0),
            },
            dumps=_dumps,
        )

    async def _stats(self, request: web.Request) -> web.Response:
        return web.json_response(self.status_provider(), dumps=_dumps)

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        if self.logger:
            self.logger.info("health_server_started", port=self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None


def _dumps(data: Any) -> str:
    return json.dumps(data, default=str, indent=2)
