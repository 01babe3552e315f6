# src/poolwatch/health.py
from __future__ import annotations

import time
from typing import Callable

from aiohttp import web

from poolwatch.scheduler.service import MonitorService

BOT_NAME = "Pool Price Alert"


def build_health_app(service: MonitorService, started_at: float | None = None,
                     monotonic: Callable[[], float] = time.monotonic) -> web.Application:
    """GET / and /health -> {"status", "bot", "pools", "uptime"}; anything else 404s."""
    started = monotonic() if started_at is None else started_at

    async def health(request: web.Request) -> web.Response:
        return web.json_response({
            "status": "running",
            "bot": BOT_NAME,
            "pools": service.pool_count(),
            "uptime": round(monotonic() - started, 3),
        })

    app = web.Application()
    app.router.add_get("/", health)
    app.router.add_get("/health", health)
    return app


async def start_health_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    """Bind failures propagate: the process must not run without its health endpoint."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner
