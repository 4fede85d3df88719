from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse

logger = logging.getLogger("tyrant_bot.health")


def create_health_app(bot: Any, persona_name: str) -> FastAPI:
    """Liveness routes for container platforms. ``bot`` only needs ``is_ready``, ``latency`` and ``memory``."""
    app = FastAPI(title=f"{persona_name} bot", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return f"{persona_name} bot — online"

    @app.get("/healthz")
    async def healthz() -> JSONResponse:
        ready = bool(bot.is_ready())
        latency = getattr(bot, "latency", float("nan"))
        latency_ms = None if latency is None or math.isnan(latency) or math.isinf(latency) else round(latency * 1000, 1)

        store_status = "ok"
        store_ms = 0.0
        try:
            start = time.perf_counter()
            await bot.memory.ping()
            store_ms = (time.perf_counter() - start) * 1000
        except Exception as exc:
            logger.warning("Health check store ping failed: %s", exc)
            store_status = "error"

        healthy = store_status == "ok"
        return JSONResponse(
            {
                "status": "ok" if healthy else "degraded",
                "ready": ready,
                "latency_ms": latency_ms,
                "store": store_status,
                "store_ping_ms": round(store_ms, 1),
            },
            status_code=200 if healthy else 503,
        )

    return app


class HealthServer:
    def __init__(self, bot: Any, persona_name: str, port: int, host: str = "0.0.0.0") -> None:
        self.host = host
        self.port = port
        self.app = create_health_app(bot, persona_name)
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(), name="healthcheck-server")
        logger.info("Healthcheck listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._server = None
