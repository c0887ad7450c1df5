"""
Liveness endpoint for the balance relayer.

Keeps a port open so the process can be health checked. It only reports
component stats and carries no relaying logic.
"""

import logging
from typing import Any, Callable, Optional

from aiohttp import web

logger = logging.getLogger(__name__)


class HealthServer:
    """Minimal aiohttp server exposing ``/`` and ``/health``."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 4000,
        stats_provider: Optional[Callable[[], dict[str, Any]]] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.stats_provider = stats_provider
        self._runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.index_handler)
        app.router.add_get("/health", self.health_handler)
        return app

    async def index_handler(self, request: web.Request) -> web.Response:
        return web.Response(text=f"Balance relayer is listening on port {self.port}")

    async def health_handler(self, request: web.Request) -> web.Response:
        payload: dict[str, Any] = {"status": "ok"}
        if self.stats_provider:
            payload.update(self.stats_provider())
        return web.json_response(payload)

    async def start(self) -> None:
        if self._runner is not None:
            return

        runner = web.AppRunner(self.create_app())
        await runner.setup()
        site = web.TCPSite(runner, host=self.host, port=self.port)
        await site.start()
        self._runner = runner
        logger.info(f"Server is listening on port {self.port}...")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Liveness server stopped")
