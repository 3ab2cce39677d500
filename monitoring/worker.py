"""
============================================================================
UPTIME PULSE - WORKER POOL
============================================================================
Consumer side of the pipeline. One receive loop per queue pulls batches,
dispatches every message to the handler of its kind and acknowledges
(deletes) it only when the handler succeeded. Anything else is left to the
queue: the message becomes visible again after its visibility timeout and
is dead-lettered after max receive count.

Architecture
------------
WorkerPool
├── run_forever()          ← receive loop of one queue
├── process_batch()        ← one receive + settle-all processing
│   ├── independent        ← bounded fan-out (asyncio.Semaphore + gather)
│   └── sequential         ← one at a time; a failure holds back the rest
│                            of its FIFO group
├── dispatch()             ← exhaustive over the four message kinds
│   ├── handle_monitor_check()   ← check, persist, alert hand-off
│   ├── handle_alert()           ← AlertEvaluator.evaluate_and_dispatch();
│   │                               not acknowledged while a rule failed
│   ├── handle_bulk_schedule()   ← CheckScheduler pass
│   └── handle_dlq_review()      ← log and acknowledge
└── _hand_off_alert()      ← ALERT_PROCESSING message or tracked task

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from config.constants import (
    PROCESSING_PROFILES,
    Defaults,
    MessageType,
    MonitorStatus,
    ProcessingProfile,
    ProcessingStrategy,
    QueueNames
)
from config.settings import AlertDispatchMode, Settings
from database.store import Datastore
from exceptions import InitializationError, QueueException
from monitoring.alerts import AlertEvaluator, MonitorSnapshot, count_consecutive_failures
from monitoring.checker import CheckResult, HealthCheckExecutor
from monitoring.scheduler import CheckScheduler
from queues.base import QueueClient, message_group_id
from queues.messages import (
    AlertContext,
    AlertMetadata,
    AlertProcessingMessage,
    AlertProcessingPayload,
    ReceivedMessage
)
from utils.helpers import TimeHelper, utcnow
from utils.logger import get_logger


logger = get_logger("WorkerPool")


# ============================================================================
# PROCESSING RESULT
# ============================================================================

@dataclass
class ProcessingResult:
    """
    Outcome of handling one message. Only a successful result is
    acknowledged.
    """
    success: bool
    message_id: str
    error: Optional[str] = None
    duration_ms: int = 0
    details: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[ReceivedMessage], Awaitable[ProcessingResult]]


# ============================================================================
# WORKER POOL
# ============================================================================

class WorkerPool:
    """
    Queue consumers plus the handlers of every message kind.

    Parameters
    ----------
    queue : QueueClient
        Queue service.
    store : Datastore
        Monitors, history and alert data.
    executor : HealthCheckExecutor
        Performs the HTTP checks.
    evaluator : AlertEvaluator
        Rule evaluation for ALERT_PROCESSING messages and task hand-off.
    scheduler : CheckScheduler, optional
        Runs BULK_SCHEDULE passes.
    settings : Settings
        Worker, monitoring and alert sections are read.
    """

    def __init__(
        self,
        queue: QueueClient,
        store: Datastore,
        executor: HealthCheckExecutor,
        evaluator: AlertEvaluator,
        scheduler: Optional[CheckScheduler] = None,
        settings: Optional[Settings] = None,
        profiles: Optional[Dict[str, ProcessingProfile]] = None,
    ):
        self.queue = queue
        self.store = store
        self.executor = executor
        self.evaluator = evaluator
        self.scheduler = scheduler
        self.settings = settings or Settings()
        self.profiles = dict(profiles or PROCESSING_PROFILES)

        self._handlers: Dict[str, Handler] = {
            MessageType.MONITOR_CHECK.value: self.handle_monitor_check,
            MessageType.ALERT_PROCESSING.value: self.handle_alert,
            MessageType.BULK_SCHEDULE.value: self.handle_bulk_schedule,
            MessageType.DLQ_REVIEW.value: self.handle_dlq_review,
        }
        missing = {kind.value for kind in MessageType} - set(self._handlers)
        if missing:
            raise InitializationError(
                f"No handler for message type(s): {', '.join(sorted(missing))}",
                component="WorkerPool"
            )

        # --- lifecycle ---
        self._running = False
        self._loop_tasks: Dict[str, asyncio.Task] = {}
        self._alert_tasks: Set[asyncio.Task] = set()

        # --- counters ---
        self.processed = 0
        self.succeeded = 0
        self.failed = 0
        self.receive_errors = 0
        self.alerts_handed_off = 0

        logger.info(
            f"WorkerPool created - parallel_workers={self.settings.worker.parallel_workers}, "
            f"alert_dispatch={self.settings.alerts.dispatch_mode.value}"
        )

    # ------------------------------------------------------------------
    # PROFILES
    # ------------------------------------------------------------------

    def profile(self, queue_name: str) -> ProcessingProfile:
        """
        Processing profile of a queue. Independent queues take their
        concurrency from WORKER_PARALLEL_WORKERS; WORKER_VISIBILITY_HEARTBEAT
        applies where the profile sets none.
        """
        profile = self.profiles.get(queue_name, ProcessingProfile())
        if profile.strategy == ProcessingStrategy.INDEPENDENT:
            profile = replace(profile, parallel_workers=self.settings.worker.parallel_workers)
        if not profile.visibility_heartbeat and self.settings.worker.visibility_heartbeat:
            profile = replace(profile, visibility_heartbeat=self.settings.worker.visibility_heartbeat)
        return profile

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, queue_names: Optional[Iterable[str]] = None) -> None:
        """Launch one receive loop per queue (check, priority, alert and scheduler queues by default)."""
        if self._running:
            logger.warning("WorkerPool is already running")
            return

        queue_names = list(queue_names or (
            QueueNames.PRIORITY_CHECKS,
            QueueNames.MONITOR_CHECKS,
            QueueNames.ALERTS,
            QueueNames.SCHEDULER,
        ))
        self._running = True
        for queue_name in queue_names:
            self._loop_tasks[queue_name] = asyncio.create_task(self.run_forever(queue_name))
        logger.info(f"✓ WorkerPool started - consuming {', '.join(queue_names)}")

    async def stop(self) -> None:
        """Stop every receive loop and wait for tracked alert tasks."""
        self._running = False
        for task in self._loop_tasks.values():
            task.cancel()
        if self._loop_tasks:
            await asyncio.gather(*self._loop_tasks.values(), return_exceptions=True)
        self._loop_tasks.clear()

        await self.drain()
        logger.info("✓ WorkerPool stopped")

    async def drain(self) -> None:
        """Wait until every alert task handed off so far has finished."""
        while self._alert_tasks:
            await asyncio.gather(*list(self._alert_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # RECEIVE LOOP
    # ------------------------------------------------------------------

    async def run_forever(self, queue_name: str, handler: Optional[Handler] = None) -> None:
        """
        Receive and process batches from *queue_name* until ``stop()``.

        An empty receive sleeps WORKER_IDLE_DELAY seconds, a receive error
        WORKER_ERROR_BACKOFF seconds.
        """
        self._running = True
        profile = self.profile(queue_name)
        logger.info(
            f"[Worker] Loop started for {queue_name} "
            f"(strategy={profile.strategy.value}, batch={profile.batch_size})"
        )

        while self._running:
            try:
                results = await self.process_batch(queue_name, handler=handler, profile=profile)
            except asyncio.CancelledError:
                break
            except QueueException as e:
                self.receive_errors += 1
                logger.error(f"[Worker] Receive from {queue_name} failed: {e.message}")
                await self._sleep(self.settings.worker.error_backoff)
                continue
            except Exception as e:
                self.receive_errors += 1
                logger.opt(exception=e).error(f"[Worker] Unhandled error in {queue_name} loop: {e}")
                await self._sleep(self.settings.worker.error_backoff)
                continue

            if not results:
                await self._sleep(self.settings.worker.idle_delay)

        logger.info(f"[Worker] Loop for {queue_name} exited")

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.sleep(seconds)
        except asyncio.CancelledError:
            self._running = False
            raise

    async def process_batch(
        self,
        queue_name: str,
        handler: Optional[Handler] = None,
        profile: Optional[ProcessingProfile] = None,
        wait_seconds: Optional[int] = None,
    ) -> List[ProcessingResult]:
        """
        One receive followed by processing of every delivered message.

        Returns
        -------
        list of ProcessingResult
            Empty when nothing was received.
        """
        profile = profile or self.profile(queue_name)
        messages = await self.queue.receive_batch(
            queue_name,
            max_messages=profile.batch_size,
            wait_seconds=profile.wait_seconds if wait_seconds is None else wait_seconds,
        )
        if not messages:
            return []

        logger.debug(f"[Worker] Received {len(messages)} message(s) from {queue_name}")

        if profile.strategy == ProcessingStrategy.SEQUENTIAL:
            return await self._process_sequential(queue_name, messages, handler, profile)
        return await self._process_independent(queue_name, messages, handler, profile)

    async def _process_independent(
        self,
        queue_name: str,
        messages: List[ReceivedMessage],
        handler: Optional[Handler],
        profile: ProcessingProfile,
    ) -> List[ProcessingResult]:
        semaphore = asyncio.Semaphore(max(1, profile.parallel_workers))

        async def run_guarded(received: ReceivedMessage) -> ProcessingResult:
            async with semaphore:
                return await self._process_message(queue_name, received, handler, profile)

        outcomes = await asyncio.gather(
            *(run_guarded(received) for received in messages),
            return_exceptions=True
        )

        results = []
        for received, outcome in zip(messages, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"[Worker] Message {received.message_id} raised: {outcome}")
                outcome = ProcessingResult(False, received.message_id, error=str(outcome))
            results.append(outcome)
        return results

    async def _process_sequential(
        self,
        queue_name: str,
        messages: List[ReceivedMessage],
        handler: Optional[Handler],
        profile: ProcessingProfile,
    ) -> List[ProcessingResult]:
        results = []
        blocked_groups: Set[str] = set()

        for received in messages:
            group = message_group_id(received.message)
            if group in blocked_groups:
                results.append(ProcessingResult(
                    False,
                    received.message_id,
                    error=f"Held back after an earlier failure in group {group}",
                ))
                continue

            result = await self._process_message(queue_name, received, handler, profile)
            if not result.success:
                blocked_groups.add(group)
            results.append(result)
        return results

    async def _process_message(
        self,
        queue_name: str,
        received: ReceivedMessage,
        handler: Optional[Handler],
        profile: ProcessingProfile,
    ) -> ProcessingResult:
        start_time = time.perf_counter()
        heartbeat: Optional[asyncio.Task] = None
        if profile.visibility_heartbeat > 0:
            heartbeat = asyncio.create_task(
                self._visibility_heartbeat(queue_name, received, profile.visibility_heartbeat)
            )

        try:
            result = await (handler or self.dispatch)(received)
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Worker] Handler failed for {received.message_id} from {queue_name}: {e}"
            )
            result = ProcessingResult(False, received.message_id, error=str(e))
        finally:
            if heartbeat is not None:
                heartbeat.cancel()

        result.duration_ms = int((time.perf_counter() - start_time) * 1000)
        self.processed += 1

        if not result.success:
            self.failed += 1
            logger.warning(
                f"[Worker] Message {received.message_id} not acknowledged "
                f"(receive #{received.receive_count}): {result.error}"
            )
            return result

        self.succeeded += 1
        try:
            await self.queue.delete(queue_name, received.receipt_handle)
        except QueueException as e:
            logger.warning(f"[Worker] Could not delete {received.message_id}: {e.message}")
        return result

    async def _visibility_heartbeat(
        self,
        queue_name: str,
        received: ReceivedMessage,
        interval: int,
    ) -> None:
        timeout = self.queue.definition(queue_name).visibility_timeout
        while True:
            await asyncio.sleep(interval)
            try:
                await self.queue.extend_visibility(queue_name, received.receipt_handle, timeout)
            except QueueException as e:
                logger.warning(
                    f"[Worker] Visibility heartbeat for {received.message_id} stopped: {e.message}"
                )
                return

    # ------------------------------------------------------------------
    # DISPATCH
    # ------------------------------------------------------------------

    async def dispatch(self, received: ReceivedMessage) -> ProcessingResult:
        """Route a message to the handler of its kind."""
        message_type = received.message.message_type
        handler = self._handlers.get(message_type)
        if handler is None:
            logger.error(f"[Worker] Unsupported message type {message_type}")
            return ProcessingResult(
                False,
                received.message_id,
                error=f"Unsupported message type: {message_type}",
            )
        return await handler(received)

    # ------------------------------------------------------------------
    # MONITOR_CHECK
    # ------------------------------------------------------------------

    async def handle_monitor_check(self, received: ReceivedMessage) -> ProcessingResult:
        """
        Run the health check of one monitor and persist the outcome.

        A monitor that no longer exists or was deactivated is acknowledged
        without a check. Datastore errors propagate so the message is
        redelivered.
        """
        message = received.message
        payload = message.payload

        monitor = await self.store.get_monitor(payload.monitor_id)
        if monitor is None or not monitor.is_active:
            logger.warning(
                f"[Worker] Monitor {payload.monitor_id} missing or inactive, "
                f"acknowledging {message.message_id}"
            )
            return ProcessingResult(
                True,
                message.message_id,
                details={"skipped": "monitor missing or inactive"},
            )

        old_status = monitor.status
        timeout = (
            payload.monitor_data.timeout_seconds
            or monitor.timeout_seconds
            or Defaults.CHECK_TIMEOUT_SECONDS
        )
        result = await self.executor.check(monitor.url, timeout)

        await self.store.update_monitor(
            monitor.id,
            status=result.status.value,
            last_checked_at=result.checked_at,
            next_check_at=TimeHelper.minutes_from(result.checked_at, monitor.interval_minutes),
            response_time=result.response_time,
            claimed_until=None,
        )
        history = await self.store.insert_history(
            result.to_history_record(monitor.id, monitor.user_id)
        )

        logger.info(
            f"[Worker] {MonitorStatus.get_emoji(result.status.value)} \"{monitor.name}\" "
            f"{old_status} → {result.status.value} ({result.response_time}ms)"
        )

        if old_status != result.status.value or result.is_failure:
            await self._hand_off_alert(
                MonitorSnapshot.from_monitor(monitor, status=old_status),
                result,
                history.id,
                correlation_id=message.correlation_id,
            )

        return ProcessingResult(
            True,
            message.message_id,
            details={"status": result.status.value, "history_id": history.id},
        )

    async def _hand_off_alert(
        self,
        monitor: MonitorSnapshot,
        result: CheckResult,
        history_id: int,
        correlation_id: Optional[str] = None,
    ) -> None:
        """
        Pass the transition to the alert pipeline. Errors are logged and
        never fail the check.
        """
        try:
            rows = await self.store.recent_history(monitor.id, self.settings.monitoring.history_window)
            statuses = [row.status for row in rows]

            if self.settings.alerts.dispatch_mode == AlertDispatchMode.TASK:
                task = asyncio.create_task(
                    self.evaluator.evaluate_and_dispatch(monitor, result, statuses, history_id)
                )
                self._alert_tasks.add(task)
                task.add_done_callback(self._alert_task_done)
            else:
                await self.queue.send(
                    QueueNames.ALERTS,
                    self.build_alert_message(monitor, result, history_id, statuses, correlation_id),
                )
            self.alerts_handed_off += 1
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Worker] Alert hand-off for monitor {monitor.id} failed: {e}"
            )

    def _alert_task_done(self, task: asyncio.Task) -> None:
        self._alert_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[Worker] Alert task failed: {error}")

    @staticmethod
    def build_alert_message(
        monitor: MonitorSnapshot,
        result: CheckResult,
        history_id: Optional[int],
        statuses: List[str],
        correlation_id: Optional[str] = None,
    ) -> AlertProcessingMessage:
        """ALERT_PROCESSING message for one status transition."""
        return AlertProcessingMessage(
            source=Defaults.WORKER_SOURCE,
            correlation_id=correlation_id,
            payload=AlertProcessingPayload(
                monitor_id=monitor.id,
                user_id=monitor.user_id,
                alert_context=AlertContext(
                    old_status=monitor.status or MonitorStatus.UNKNOWN.value,
                    new_status=result.status.value,
                    consecutive_failures=count_consecutive_failures(statuses, result.status.value),
                    response_time=result.response_time,
                    status_code=result.status_code,
                    error_message=result.error_message,
                    status_change_at=TimeHelper.to_iso(result.checked_at),
                    history_id=history_id,
                    history_statuses=statuses,
                ),
                metadata=AlertMetadata(
                    monitor_name=monitor.name,
                    monitor_url=monitor.url,
                    check_duration=result.response_time or 0,
                ),
            ),
        )

    # ------------------------------------------------------------------
    # ALERT_PROCESSING
    # ------------------------------------------------------------------

    async def handle_alert(self, received: ReceivedMessage) -> ProcessingResult:
        """Evaluate alert rules for a handed-off transition."""
        message = received.message
        payload = message.payload
        context = payload.alert_context

        monitor = await self.store.get_monitor(payload.monitor_id)
        if monitor is None or not monitor.is_active:
            logger.warning(f"[Worker] Monitor {payload.monitor_id} missing or inactive, dropping alert")
            return ProcessingResult(
                True,
                message.message_id,
                details={"skipped": "monitor missing or inactive"},
            )

        snapshot = MonitorSnapshot.from_monitor(monitor, status=context.old_status)
        check_result = CheckResult(
            status=MonitorStatus(context.new_status),
            response_time=context.response_time,
            status_code=context.status_code,
            error_message=context.error_message,
            checked_at=TimeHelper.parse_iso(context.status_change_at) or utcnow(),
        )

        dispatch = await self.evaluator.evaluate_and_dispatch(
            snapshot,
            check_result,
            context.history_statuses,
            context.history_id,
        )
        if dispatch.alerts_failed:
            # redelivery retries the failed rules on their logs; sent ones are skipped
            return ProcessingResult(
                False,
                message.message_id,
                error=f"{dispatch.alerts_failed} alert(s) failed",
                details=dispatch.to_dict(),
            )
        return ProcessingResult(True, message.message_id, details=dispatch.to_dict())

    # ------------------------------------------------------------------
    # BULK_SCHEDULE
    # ------------------------------------------------------------------

    async def handle_bulk_schedule(self, received: ReceivedMessage) -> ProcessingResult:
        """Run a scheduling pass with the message's batch size and filters."""
        message = received.message
        if self.scheduler is None:
            return ProcessingResult(False, message.message_id, error="No scheduler configured")

        payload = message.payload
        result = await self.scheduler.schedule_due_checks(
            limit=payload.batch_size,
            filters=payload.filters,
            operation=payload.operation,
        )
        logger.info(f"[Worker] Bulk {payload.operation}: {result.to_dict()}")
        return ProcessingResult(True, message.message_id, details=result.to_dict())

    # ------------------------------------------------------------------
    # DLQ_REVIEW
    # ------------------------------------------------------------------

    async def handle_dlq_review(self, received: ReceivedMessage) -> ProcessingResult:
        """Record a dead-letter review request; nothing is replayed."""
        message = received.message
        payload = message.payload
        logger.error(
            f"[Worker] DLQ review: message from {payload.original_queue} failed "
            f"after {len(payload.retry_history)} attempt(s): {payload.failure_reason}"
        )
        return ProcessingResult(
            True,
            message.message_id,
            details={"original_queue": payload.original_queue},
        )

    # ------------------------------------------------------------------
    # HEALTH
    # ------------------------------------------------------------------

    def health_check(self) -> Dict[str, Any]:
        """Running state and counters."""
        return {
            "running": self._running,
            "queues": sorted(self._loop_tasks),
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "receive_errors": self.receive_errors,
            "alerts_handed_off": self.alerts_handed_off,
            "pending_alert_tasks": len(self._alert_tasks),
        }
