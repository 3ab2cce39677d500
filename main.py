"""
============================================================================
UPTIME PULSE - MAIN APPLICATION
============================================================================
Process entry point. Wires every layer of the check and alert pipeline:

    Layer 1 - Core & Database
        • Settings (Pydantic)
        • SQLAlchemy async engine + models, Datastore
        • Logging (loguru)

    Layer 2 - Transport
        • Queue client (in-memory or AWS SQS)
        • Shared httpx.AsyncClient
        • Notification provider registry (email, SMS, webhook)

    Layer 3 - Pipeline
        • CheckScheduler     - enqueues due monitors
        • HealthCheckExecutor + WorkerPool - consumes the queues
        • AlertEvaluator     - rules, cooldown, dispatch
        • JobRunner          - periodic scheduling pass and housekeeping
        • HealthServer       - aiohttp /, /health, /queues

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if configured)
3.  Create queue client, HTTP client and provider registry
4.  Create scheduler, evaluator, executor and worker pool
5.  Start HealthServer, JobRunner and WorkerPool
6.  Wait for SIGINT / SIGTERM

Shutdown Order (reverse)
-------------------------
    Stop workers → stop jobs → stop health server →
    close HTTP client → close queue client → close DB → exit

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

import httpx

from config.settings import Settings, get_settings
from database.manager import DatabaseManager
from database.store import Datastore
from exceptions import PulseException
from monitoring.alerts import AlertEvaluator
from monitoring.checker import HealthCheckExecutor
from monitoring.health import HealthServer
from monitoring.jobs import JobRunner
from monitoring.scheduler import CheckScheduler
from monitoring.worker import WorkerPool
from notifications import ProviderRegistry, build_provider_registry
from queues import QueueClient, create_queue_client
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class PulseApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. Components receive their collaborators explicitly; no
    module-level clients exist.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.store: Optional[Datastore] = None
        self.queue: Optional[QueueClient] = None
        self.http_client: Optional[httpx.AsyncClient] = None
        self.registry: Optional[ProviderRegistry] = None
        self.check_scheduler: Optional[CheckScheduler] = None
        self.worker_pool: Optional[WorkerPool] = None
        self.job_runner: Optional[JobRunner] = None
        self.health_server: Optional[HealthServer] = None

        # --- lifecycle ---
        self._is_running = False
        self._stop_event = asyncio.Event()

    def _print_banner(self) -> None:
        banner = f"""
╔══════════════════════════════════════════════════════════════════════════╗
║   🚀  {self.settings.app_name:<20} v{self.settings.app_version:<10}                                ║
║   Scheduler  •  Queue Workers  •  Alert Dispatch  •  Health Server       ║
║   Environment : {self.settings.environment.value:<12} Queue : {self.settings.queue.backend.value:<10}                    ║
╚══════════════════════════════════════════════════════════════════════════╝
"""
        logger.info(banner)

    # ==================================================================
    # PHASE 1 - DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Initialize the database manager and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.initialize()

            if not await self.db_manager.check_connection():
                logger.error("✗ Database connection check failed")
                return False

            db_info = await self.db_manager.get_database_info()
            logger.info(
                f"  ✓ Connected to {self.settings.database.type.value} - "
                f"monitors={db_info.get('monitors', 0)}, "
                f"history={db_info.get('history', 0)}, "
                f"alert_logs={db_info.get('alert_logs', 0)}"
            )
            self.store = Datastore(self.db_manager)
            return True

        except PulseException as e:
            logger.error(f"  ✗ Database init failed: {e.log_format()}")
            return False

    # ==================================================================
    # PHASE 2 - TRANSPORT
    # ==================================================================

    async def _init_transport(self) -> bool:
        """Queue client, HTTP client and notification providers."""
        logger.info("── Phase 2: Queues & Providers ───────────────────")
        try:
            self.queue = create_queue_client(self.settings.queue)
            verify = getattr(self.queue, "verify_queues", None)
            if verify is not None:
                await verify()

            self.http_client = httpx.AsyncClient(
                verify=self.settings.monitoring.verify_ssl,
                limits=httpx.Limits(
                    max_connections=max(20, self.settings.worker.parallel_workers * 4),
                    max_keepalive_connections=10
                ),
            )
            self.registry = build_provider_registry(self.settings.notifications, self.http_client)
            logger.info(f"  ✓ Queue backend: {self.settings.queue.backend.value}")
            return True

        except PulseException as e:
            logger.error(f"  ✗ Transport init failed: {e.log_format()}")
            return False

    # ==================================================================
    # PHASE 3 - PIPELINE
    # ==================================================================

    def _init_pipeline(self) -> None:
        """Wire scheduler, evaluator, executor, workers and jobs."""
        logger.info("── Phase 3: Pipeline ─────────────────────────────")
        self.check_scheduler = CheckScheduler(self.store, self.queue, self.settings.scheduler)
        evaluator = AlertEvaluator(self.store, self.registry)
        executor = HealthCheckExecutor(self.http_client, self.settings.monitoring)

        self.worker_pool = WorkerPool(
            queue=self.queue,
            store=self.store,
            executor=executor,
            evaluator=evaluator,
            scheduler=self.check_scheduler,
            settings=self.settings,
        )
        self.job_runner = JobRunner(
            self.settings,
            self.db_manager,
            self.store,
            self.queue,
            self.check_scheduler,
        )
        if self.settings.web_enabled:
            self.health_server = HealthServer(
                self.settings,
                self.queue,
                worker_pool=self.worker_pool,
                check_scheduler=self.check_scheduler,
                job_runner=self.job_runner,
            )
        logger.info("  ✓ Scheduler, WorkerPool, JobRunner created")

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any critical phase fails.
        """
        self._print_banner()
        logger.info("=" * 74)
        logger.info("  STARTING UP …")
        logger.info("=" * 74)

        if not await self._init_database():
            return False
        if not await self._init_transport():
            return False
        self._init_pipeline()

        logger.info("── Starting background services ───────────────────")

        if self.health_server:
            await self.health_server.start()

        await self.job_runner.start()

        if self.settings.worker.enabled:
            await self.worker_pool.start()
        else:
            logger.info("  Workers disabled (WORKER_ENABLED=false)")

        self._is_running = True

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info("=" * 74)
        if self.health_server:
            logger.info(
                f"  Health endpoint: http://{self.settings.web_host}:{self.settings.web_port}/health"
            )
        logger.info(
            f"  Scheduling every {self.settings.scheduler.interval_seconds}s, "
            f"batch limit {self.settings.scheduler.batch_limit}, "
            f"{self.settings.worker.parallel_workers} parallel checks per batch"
        )
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        Each step is wrapped so a failure in one subsystem doesn't prevent
        the others from cleaning up.
        """
        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        self._is_running = False

        steps = (
            ("WorkerPool", self.worker_pool.stop if self.worker_pool else None),
            ("JobRunner", self.job_runner.stop if self.job_runner else None),
            ("HealthServer", self.health_server.stop if self.health_server else None),
            ("HTTP client", self.http_client.aclose if self.http_client else None),
            ("Queue client", self.queue.close if self.queue else None),
            ("Database", self.db_manager.close if self.db_manager else None),
        )
        for name, stop in steps:
            if stop is None:
                continue
            try:
                await stop()
                logger.info(f"  ✓ {name} stopped")
            except Exception as e:
                logger.error(f"  ✗ {name} stop error: {e}")

        logger.info("=" * 74)
        logger.info("  ✓ SHUTDOWN COMPLETE")
        logger.info("=" * 74)

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        logger.info("  ⚡ Signal received - initiating graceful shutdown…")
        self._stop_event.set()

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: PulseApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so the process shuts down gracefully
    when the platform restarts it.
    """
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, app.request_stop)
        except (NotImplementedError, OSError):
            # Not supported on Windows; KeyboardInterrupt still applies
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> None:
    """
    Async main - creates the app, starts it, and runs until shutdown.
    """
    settings = get_settings()
    setup_logging(settings.logging)

    app = PulseApplication(settings)
    _install_signal_handlers(app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed - exiting")
            await app.shutdown()
            sys.exit(1)

        await app.run()
    finally:
        if app._is_running:
            await app.shutdown()


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
