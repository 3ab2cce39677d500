"""
============================================================================
UPTIME PULSE - PERIODIC JOB RUNNER
============================================================================
A lightweight, asyncio-native runner for the periodic jobs of the pipeline.
It stands in for an external cron: every job is a coroutine in the same
event loop, so a single process can run scheduler, workers and jobs.

Registered Jobs
---------------
1.  schedule_checks      (every SCHEDULER_INTERVAL_SECONDS)
    Runs one CheckScheduler pass and enqueues every due monitor.

2.  queue_metrics        (every 60 s)
    Logs depth and oldest-message age of every queue and warns when a
    dead-letter queue holds messages.

3.  history_retention    (every 24 h)
    Deletes monitoring history older than MONITOR_HISTORY_RETENTION_DAYS.

4.  heartbeat            (every 10 min)
    Writes a heartbeat entry with database and queue health so operators
    can verify the process is alive during quiet periods.

A job is never started again while its previous run is still executing.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config.constants import QueueNames
from config.settings import Settings
from database.manager import DatabaseManager
from database.store import Datastore
from monitoring.scheduler import CheckScheduler
from queues.base import QueueClient
from utils.helpers import TimeHelper, utcnow
from utils.logger import get_logger


logger = get_logger("Jobs")


def _epoch_to_iso(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return TimeHelper.to_iso(datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None))


# ============================================================================
# JOB DEFINITION
# ============================================================================

@dataclass
class ScheduledJob:
    """
    One periodic job and its bookkeeping.

    Times are epoch seconds; ``next_run`` starts at registration time so
    every job runs on the first tick. ``running`` guards against overlap.
    """
    name: str
    interval_seconds: float
    coroutine_factory: Callable[[], Awaitable[Any]]
    enabled: bool = True
    last_run: Optional[float] = None
    next_run: float = field(default_factory=time.time)
    run_count: int = 0
    error_count: int = 0
    running: bool = False


# ============================================================================
# JOB RUNNER
# ============================================================================

class JobRunner:
    """
    Asyncio-based periodic job runner.

    Usage
    -----
        runner = JobRunner(settings, db_manager, store, queue, check_scheduler)
        await runner.start()
        # ... later ...
        await runner.stop()
    """

    def __init__(
        self,
        settings: Settings,
        db_manager: DatabaseManager,
        store: Datastore,
        queue: QueueClient,
        check_scheduler: Optional[CheckScheduler] = None,
    ):
        self.settings = settings
        self.db_manager = db_manager
        self.store = store
        self.queue = queue
        self.check_scheduler = check_scheduler

        self._jobs: Dict[str, ScheduledJob] = {}
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._job_tasks: Set[asyncio.Task] = set()
        self._tick_interval = settings.scheduler.tick_interval

        self._register_builtin_jobs()

        logger.info(f"JobRunner created with {len(self._jobs)} built-in jobs")

    # ------------------------------------------------------------------
    # JOB REGISTRATION
    # ------------------------------------------------------------------

    def register_job(
        self,
        name: str,
        interval_seconds: float,
        coroutine_factory: Callable[[], Awaitable[Any]],
        enabled: bool = True,
    ) -> None:
        """Add a job, replacing any job of the same name. It is due immediately."""
        if name in self._jobs:
            logger.warning(f"[Jobs] Job '{name}' already registered, overwriting")

        self._jobs[name] = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            coroutine_factory=coroutine_factory,
            enabled=enabled,
        )
        logger.debug(f"[Jobs] Registered job '{name}' (interval={interval_seconds}s)")

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        job = self._jobs.get(name)
        if job is None:
            return False
        job.enabled = enabled
        return True

    def enable_job(self, name: str) -> bool:
        """Returns False for an unknown job."""
        return self._set_enabled(name, True)

    def disable_job(self, name: str) -> bool:
        """Returns False for an unknown job. A run in progress is not cancelled."""
        return self._set_enabled(name, False)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the runner loop."""
        if self._running:
            logger.warning("JobRunner is already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._main_loop())
        logger.info("✓ JobRunner started")

    async def stop(self) -> None:
        """Stop the loop and cancel jobs still in progress."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        for task in list(self._job_tasks):
            task.cancel()
        if self._job_tasks:
            await asyncio.gather(*self._job_tasks, return_exceptions=True)
        logger.info("✓ JobRunner stopped")

    # ------------------------------------------------------------------
    # MAIN LOOP
    # ------------------------------------------------------------------

    async def _main_loop(self) -> None:
        """
        Wake up every tick. For each enabled, idle job whose next_run has
        arrived, launch it as a background task.
        """
        logger.info("[Jobs] Main loop started")
        while self._running:
            self.tick()
            try:
                await asyncio.sleep(self._tick_interval)
            except asyncio.CancelledError:
                break

        logger.info("[Jobs] Main loop exited")

    def tick(self, now: Optional[float] = None) -> List[str]:
        """
        Launch every due job once.

        Returns:
            Names of the jobs launched
        """
        now = now if now is not None else time.time()
        launched = []
        for job in self._jobs.values():
            if job.enabled and not job.running and now >= job.next_run:
                job.running = True
                task = asyncio.create_task(self._execute_job(job))
                self._job_tasks.add(task)
                task.add_done_callback(self._job_tasks.discard)
                job.next_run = now + job.interval_seconds
                launched.append(job.name)
        return launched

    # ------------------------------------------------------------------
    # JOB EXECUTION
    # ------------------------------------------------------------------

    async def run_job(self, name: str) -> None:
        """Run one registered job immediately and wait for it."""
        job = self._jobs[name]
        job.running = True
        await self._execute_job(job)

    async def _execute_job(self, job: ScheduledJob) -> None:
        """
        Run a single job, capture timing and errors.
        """
        start_time = time.time()
        try:
            logger.debug(f"[Jobs] Running job '{job.name}'…")
            await job.coroutine_factory()
            elapsed = time.time() - start_time

            job.run_count += 1
            job.last_run = time.time()
            logger.debug(
                f"[Jobs] Job '{job.name}' completed in {elapsed:.2f}s "
                f"(run #{job.run_count})"
            )

        except Exception as e:
            job.error_count += 1
            elapsed = time.time() - start_time
            logger.opt(exception=e).error(
                f"[Jobs] Job '{job.name}' FAILED after {elapsed:.2f}s: {e}"
            )
        finally:
            job.running = False

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_job_stats(self) -> List[Dict[str, Any]]:
        """Counters and ISO timestamps of every job, for /health."""
        return [
            {
                "name": job.name,
                "interval_seconds": job.interval_seconds,
                "enabled": job.enabled,
                "running": job.running,
                "run_count": job.run_count,
                "error_count": job.error_count,
                "last_run": _epoch_to_iso(job.last_run),
                "next_run": _epoch_to_iso(job.next_run),
            }
            for job in self._jobs.values()
        ]

    # ==================================================================
    # BUILT-IN JOBS
    # ==================================================================

    def _register_builtin_jobs(self) -> None:
        """Scheduling pass, queue metrics, history retention and heartbeat."""

        # 1. Scheduling pass
        self.register_job(
            "schedule_checks",
            interval_seconds=self.settings.scheduler.interval_seconds,
            coroutine_factory=self._job_schedule_checks,
            enabled=self.settings.scheduler.enabled and self.check_scheduler is not None,
        )

        # 2. Queue metrics (every minute)
        self.register_job(
            "queue_metrics",
            interval_seconds=60,
            coroutine_factory=self._job_queue_metrics,
        )

        # 3. History retention (every 24 hours)
        self.register_job(
            "history_retention",
            interval_seconds=86400,
            coroutine_factory=self._job_history_retention,
        )

        # 4. Heartbeat (every 10 minutes)
        self.register_job(
            "heartbeat",
            interval_seconds=600,
            coroutine_factory=self._job_heartbeat,
        )

    # ------------------------------------------------------------------
    # JOB: Schedule Checks
    # ------------------------------------------------------------------

    async def _job_schedule_checks(self) -> None:
        result = await self.check_scheduler.schedule_due_checks()
        if result.total:
            logger.info(
                f"[ScheduleChecks] total={result.total}, enqueued={result.enqueued}, "
                f"skipped={result.skipped}, errors={result.errors}"
            )

    # ------------------------------------------------------------------
    # JOB: Queue Metrics
    # ------------------------------------------------------------------

    async def _job_queue_metrics(self) -> Dict[str, Any]:
        """
        Log depth and age for every queue. Dead-lettered messages are
        never consumed automatically, so a non-empty DLQ is a warning.
        """
        health = await self.queue.system_health()

        for queue_name, attrs in health["queues"].items():
            if "error" in attrs:
                continue
            logger.debug(
                f"[QueueMetrics] {queue_name}: depth={attrs['depth']}, "
                f"in_flight={attrs['in_flight']}, oldest={attrs['oldest_age_seconds']}s"
            )
            if queue_name in QueueNames.dead_letter_queues() and attrs["depth"] > 0:
                logger.warning(
                    f"[QueueMetrics] Dead-letter queue {queue_name} holds "
                    f"{attrs['depth']} message(s)"
                )

        if not health["healthy"]:
            logger.warning("[QueueMetrics] One or more queues failed to report attributes")
        return health

    # ------------------------------------------------------------------
    # JOB: History Retention
    # ------------------------------------------------------------------

    async def _job_history_retention(self) -> int:
        """
        Delete history rows beyond the retention window.
        """
        retention_days = self.settings.monitoring.history_retention_days
        cutoff = utcnow() - timedelta(days=retention_days)
        deleted = await self.store.delete_history_before(cutoff)
        logger.info(
            f"[HistoryRetention] Deleted {deleted} history rows older than "
            f"{retention_days} days"
        )
        return deleted

    # ------------------------------------------------------------------
    # JOB: Heartbeat
    # ------------------------------------------------------------------

    async def _job_heartbeat(self) -> None:
        """
        Write a simple heartbeat log entry.
        """
        db_alive = await self.db_manager.check_connection()
        queue_health = await self.queue.system_health()
        logger.info(
            f"[Heartbeat] ✓ Pulse alive - db={'OK' if db_alive else 'FAIL'}, "
            f"queues={'OK' if queue_health['healthy'] else 'FAIL'}, "
            f"dead_lettered={queue_health['dead_lettered']}, "
            f"time={utcnow().strftime('%Y-%m-%d %H:%M:%S')} UTC"
        )
