"""
============================================================================
UPTIME PULSE - CHECK SCHEDULER
============================================================================
Selects monitors whose check is due, tags each with a priority and
enqueues exactly one MONITOR_CHECK message per monitor.

Pass
----
1. Query active, unleased monitors with next_check_at in the past,
   oldest-due first (SCHEDULER_BATCH_LIMIT).
2. For each monitor:
   a. take the scheduling lease (compare-and-set on claimed_until); a
      monitor leased by a concurrent pass is skipped
   b. classify priority, pick the queue, send the message
   c. advance next_check_at by the monitor's interval
   An enqueue failure releases the lease and leaves next_check_at alone
   so the next pass retries. A failure to advance next_check_at after a
   successful send is only logged; the lease still blocks re-selection.
3. Errors are counted per monitor; a pass never raises on partial failure.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from config.constants import Defaults, MonitorStatus, Priority, QueueNames
from config.settings import SchedulerSettings
from database.models import Monitor
from database.store import Datastore
from exceptions import DatabaseException, QueueException
from queues.base import QueueClient
from queues.messages import (
    BulkFilters,
    BulkScheduleMessage,
    BulkSchedulePayload,
    CheckConfig,
    MonitorCheckMessage,
    MonitorCheckPayload,
    MonitorData,
    PreviousCheck
)
from utils.helpers import TimeHelper, utcnow
from utils.logger import get_logger, log_execution_time


logger = get_logger("CheckScheduler")

EXPECTED_DURATION_MS = 15000


# ============================================================================
# PRIORITY
# ============================================================================

def classify_priority(status: Optional[str], interval_minutes: int) -> Priority:
    """
    Priority of a monitor's next check.

    Failing or very frequent monitors are critical, frequent ones high,
    stable infrequent ones low.
    """
    if MonitorStatus.is_failure(status) or interval_minutes <= 1:
        return Priority.CRITICAL
    if interval_minutes <= 5:
        return Priority.HIGH
    if interval_minutes >= 30 and status == MonitorStatus.UP.value:
        return Priority.LOW
    return Priority.NORMAL


def select_queue(priority: Priority) -> str:
    """Critical and high checks use the priority queue, the rest the FIFO check queue."""
    if priority.is_urgent:
        return QueueNames.PRIORITY_CHECKS
    return QueueNames.MONITOR_CHECKS


@dataclass
class ScheduleResult:
    """Counters of one scheduling pass."""
    total: int = 0
    enqueued: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# ============================================================================
# SCHEDULER
# ============================================================================

class CheckScheduler:
    """
    Producer side of the check pipeline.

    Args:
        store: Datastore
        queue: Queue client
        settings: Scheduler settings
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        store: Datastore,
        queue: QueueClient,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.queue = queue
        self.settings = settings or SchedulerSettings()
        self.clock = clock

    # ------------------------------------------------------------------
    # SCHEDULING PASS
    # ------------------------------------------------------------------

    @log_execution_time
    async def schedule_due_checks(
        self,
        limit: Optional[int] = None,
        filters: Optional[BulkFilters] = None,
        operation: str = "schedule_checks",
    ) -> ScheduleResult:
        """
        Enqueue one check message for every due monitor.

        Parameters
        ----------
        limit : int, optional
            Maximum monitors per pass; SCHEDULER_BATCH_LIMIT by default.
        filters : BulkFilters, optional
            Restrict the pass to one user, priority or set of intervals.
        operation : str
            ``reschedule_failed`` only takes failing monitors and
            ``priority_check`` only critical/high ones.

        Returns
        -------
        ScheduleResult
        """
        now = self.clock()
        limit = limit or self.settings.batch_limit
        result = ScheduleResult()

        try:
            monitors = await self.store.monitors_due_for_check(limit, now=now)
        except DatabaseException as e:
            logger.error(f"[Scheduler] Could not load due monitors: {e.message}")
            result.errors += 1
            return result

        monitors = [m for m in monitors if self._matches(m, filters, operation)]
        result.total = len(monitors)
        if not monitors:
            logger.debug("[Scheduler] No monitors due for checking")
            return result

        logger.info(f"[Scheduler] {len(monitors)} monitor(s) due for checking")

        for monitor in monitors:
            try:
                outcome = await self._schedule_one(monitor, now)
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[Scheduler] Unexpected error scheduling monitor {monitor.id}: {e}"
                )
                outcome = "error"

            if outcome == "enqueued":
                result.enqueued += 1
            elif outcome == "skipped":
                result.skipped += 1
            else:
                result.errors += 1

        logger.info(
            f"[Scheduler] Pass complete: {result.enqueued} enqueued, "
            f"{result.skipped} skipped, {result.errors} errors"
        )
        return result

    async def _schedule_one(self, monitor: Monitor, now: datetime) -> str:
        lease_until = now + timedelta(seconds=self.settings.lease_seconds)

        try:
            claimed = await self.store.claim_monitor(monitor.id, until=lease_until, now=now)
        except DatabaseException as e:
            logger.error(f"[Scheduler] Could not claim monitor {monitor.id}: {e.message}")
            return "error"
        if not claimed:
            logger.debug(f"[Scheduler] Monitor {monitor.id} already claimed, skipping")
            return "skipped"

        priority = classify_priority(monitor.status, monitor.interval_minutes)
        queue_name = select_queue(priority)
        message = self.build_check_message(monitor, priority, now)
        attributes = {
            "Priority": priority.value,
            "UserId": monitor.user_id,
            "IntervalMinutes": str(monitor.interval_minutes),
        }

        try:
            await self.queue.send(queue_name, message, attributes)
        except QueueException as e:
            logger.error(f"[Scheduler] Failed to enqueue monitor {monitor.id}: {e.message}")
            try:
                await self.store.release_monitor(monitor.id)
            except DatabaseException as release_error:
                logger.error(
                    f"[Scheduler] Could not release lease of {monitor.id}: {release_error.message}"
                )
            return "error"

        try:
            await self.store.update_monitor(
                monitor.id,
                next_check_at=TimeHelper.minutes_from(now, monitor.interval_minutes)
            )
        except DatabaseException as e:
            logger.warning(
                f"[Scheduler] Enqueued monitor {monitor.id} but could not advance "
                f"next_check_at: {e.message}"
            )

        logger.debug(f"[Scheduler] Monitor {monitor.id} → {queue_name} ({priority.value})")
        return "enqueued"

    @staticmethod
    def _matches(monitor: Monitor, filters: Optional[BulkFilters], operation: str) -> bool:
        priority = classify_priority(monitor.status, monitor.interval_minutes)

        if operation == "reschedule_failed" and not MonitorStatus.is_failure(monitor.status):
            return False
        if operation == "priority_check" and not priority.is_urgent:
            return False
        if filters is None:
            return True
        if filters.user_id and monitor.user_id != filters.user_id:
            return False
        if filters.priority and priority != filters.priority:
            return False
        if filters.interval_minutes and monitor.interval_minutes not in filters.interval_minutes:
            return False
        return True

    # ------------------------------------------------------------------
    # MESSAGE BUILDERS
    # ------------------------------------------------------------------

    def build_check_message(
        self,
        monitor: Monitor,
        priority: Priority,
        now: Optional[datetime] = None,
    ) -> MonitorCheckMessage:
        """MONITOR_CHECK message carrying a snapshot of the monitor."""
        now = now or self.clock()

        previous_check = None
        if monitor.status:
            previous_check = PreviousCheck(
                status=monitor.status,
                response_time=monitor.response_time,
                checked_at=TimeHelper.to_iso(monitor.last_checked_at) if monitor.last_checked_at else None,
            )

        return MonitorCheckMessage(
            correlation_id=f"schedule-{now.strftime('%Y-%m-%d')}",
            payload=MonitorCheckPayload(
                monitor_id=monitor.id,
                user_id=monitor.user_id,
                monitor_data=MonitorData(
                    name=monitor.name,
                    url=monitor.url,
                    expected_status=monitor.status or MonitorStatus.PENDING.value,
                    interval_minutes=monitor.interval_minutes,
                    timeout_seconds=monitor.timeout_seconds or Defaults.CHECK_TIMEOUT_SECONDS,
                ),
                check_config=CheckConfig(
                    priority=priority,
                    scheduled_at=TimeHelper.to_iso(now),
                    expected_duration=EXPECTED_DURATION_MS,
                ),
                previous_check=previous_check,
            ),
        )

    def build_bulk_schedule_message(
        self,
        operation: str = "schedule_checks",
        filters: Optional[Dict[str, Any]] = None,
    ) -> BulkScheduleMessage:
        """
        BULK_SCHEDULE message for the scheduler queue.

        Args:
            operation: schedule_checks, reschedule_failed or priority_check
            filters: Optional ``user_id`` / ``priority`` / ``interval_minutes``
        """
        return BulkScheduleMessage(
            max_retries=2,
            payload=BulkSchedulePayload(
                target_time=TimeHelper.to_iso(self.clock()),
                batch_size=self.settings.batch_limit,
                filters=BulkFilters(**(filters or {})),
                operation=operation,
            ),
        )

    # ------------------------------------------------------------------
    # HEALTH
    # ------------------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        """Active and due monitor counts."""
        try:
            active = await self.store.count_active_monitors()
            due = await self.store.count_due_monitors(now=self.clock())
        except DatabaseException as e:
            return {"healthy": False, "error": e.message}

        return {
            "healthy": True,
            "total_active_monitors": active,
            "monitors_due": due,
            "batch_limit": self.settings.batch_limit,
        }
