"""
============================================================================
UPTIME PULSE - HEALTH & STATUS SERVER
============================================================================
A lightweight aiohttp HTTP server for load balancers and operators.

    GET /          → 200 "OK"   (basic liveness)
    GET /health    → 200 JSON   { status, uptime, workers, scheduler, jobs }
                     503 when a component reports itself unhealthy
    GET /queues    → 200 JSON   attributes of every configured queue

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import time
from typing import Any, Dict, Optional

from aiohttp import web

from config.settings import Settings
from monitoring.jobs import JobRunner
from monitoring.scheduler import CheckScheduler
from monitoring.worker import WorkerPool
from queues.base import QueueClient
from utils.helpers import TimeHelper, utcnow
from utils.logger import get_logger


logger = get_logger("HealthServer")


class HealthServer:
    """
    aiohttp server exposing liveness, component health and queue metrics.

    Attributes
    ----------
    app : aiohttp.web.Application
    _runner : aiohttp.web.AppRunner
    _site : aiohttp.web.TCPSite
    _start_time : float          epoch seconds when the server started
    _request_count : int         total requests served
    """

    def __init__(
        self,
        settings: Settings,
        queue: QueueClient,
        worker_pool: Optional[WorkerPool] = None,
        check_scheduler: Optional[CheckScheduler] = None,
        job_runner: Optional[JobRunner] = None,
    ):
        self.settings = settings
        self.queue = queue
        self.worker_pool = worker_pool
        self.check_scheduler = check_scheduler
        self.job_runner = job_runner

        self._host = settings.web_host
        self._port = settings.web_port
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()
        self._request_count: int = 0

        self.app.router.add_get("/", self._handle_root)
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/queues", self._handle_queues)

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info(f"✓ HealthServer listening on {self._host}:{self._port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ HealthServer stopped")

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_root(self, request: web.Request) -> web.Response:
        """GET / - simple liveness check."""
        self._request_count += 1
        return web.Response(text="OK", status=200)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health - component health JSON."""
        self._request_count += 1
        uptime_seconds = time.time() - self._start_time

        health: Dict[str, Any] = {
            "status": "healthy",
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": TimeHelper.seconds_to_human_readable(int(uptime_seconds)),
            "requests_served": self._request_count,
            "timestamp": TimeHelper.to_iso(utcnow()),
            "app_name": self.settings.app_name,
            "app_version": self.settings.app_version,
        }

        if self.worker_pool is not None:
            health["workers"] = self.worker_pool.health_check()
        if self.check_scheduler is not None:
            health["scheduler"] = await self.check_scheduler.health_check()
            if not health["scheduler"]["healthy"]:
                health["status"] = "degraded"
        if self.job_runner is not None:
            health["jobs"] = self.job_runner.get_job_stats()

        status = 200 if health["status"] == "healthy" else 503
        return web.json_response(health, status=status)

    async def _handle_queues(self, request: web.Request) -> web.Response:
        """GET /queues - depth and age of every queue."""
        self._request_count += 1
        queues = await self.queue.system_health()
        return web.json_response(queues, status=200 if queues["healthy"] else 503)
