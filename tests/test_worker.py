"""Tests for the worker pool: check handling, alert hand-off, dispatch and acknowledgment."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from config.constants import MonitorStatus, QueueNames
from config.settings import AlertSettings, Settings, WorkerSettings
from monitoring.alerts import AlertEvaluator, MonitorSnapshot
from monitoring.checker import CheckResult
from monitoring.scheduler import CheckScheduler
from monitoring.worker import ProcessingResult, WorkerPool
from queues.messages import (
    AlertContext,
    AlertMetadata,
    AlertProcessingMessage,
    AlertProcessingPayload,
    DLQMessage,
    DLQPayload
)


@pytest.fixture
def make_pool(store, queue, registry, clock, executor):
    """Worker pool wired to the in-memory queue, scripted executor and recording provider."""

    def _make(**settings_overrides) -> WorkerPool:
        settings_overrides.setdefault("worker", WorkerSettings(idle_delay=0.01, error_backoff=0.01))
        settings = Settings(**settings_overrides)
        return WorkerPool(
            queue=queue,
            store=store,
            executor=executor,
            evaluator=AlertEvaluator(store, registry, clock=clock),
            scheduler=CheckScheduler(store, queue, settings.scheduler, clock=clock),
            settings=settings,
        )

    return _make


@pytest.fixture
def pool(make_pool) -> WorkerPool:
    return make_pool()


def alert_message(monitor_id: str) -> AlertProcessingMessage:
    return AlertProcessingMessage(
        payload=AlertProcessingPayload(
            monitor_id=monitor_id,
            user_id="user-1",
            alert_context=AlertContext(
                old_status="up",
                new_status="down",
                status_change_at="2026-01-05T12:00:00.000Z",
            ),
            metadata=AlertMetadata(monitor_name="Example", monitor_url="https://example.com"),
        )
    )


# ---------------------------------------------------------------------------
# MONITOR_CHECK
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_check_persists_result_and_hands_off_alert(pool, store, queue, clock, executor, make_monitor) -> None:
    monitor = await make_monitor(interval_minutes=10)
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.DOWN)

    [result] = await pool.process_batch(QueueNames.MONITOR_CHECKS, wait_seconds=0)

    assert result.success
    assert result.details["status"] == "down"
    assert executor.calls == [monitor.url]

    refreshed = await store.get_monitor(monitor.id)
    assert refreshed.status == "down"
    assert refreshed.response_time == 42
    assert refreshed.last_checked_at == clock()
    assert refreshed.claimed_until is None
    assert refreshed.next_check_at == clock() + timedelta(minutes=10)

    [row] = await store.recent_history(monitor.id, 10)
    assert row.id == result.details["history_id"]
    assert row.status_code == 503

    # Acknowledged, and the transition went to the alert queue
    assert (await queue.attributes(QueueNames.MONITOR_CHECKS)).in_flight == 0
    [handed_off] = await queue.receive_batch(QueueNames.ALERTS)
    context = handed_off.message.payload.alert_context
    assert (context.old_status, context.new_status) == ("up", "down")
    assert context.consecutive_failures == 1
    assert context.history_id == row.id
    assert context.history_statuses == ["down"]
    assert pool.alerts_handed_off == 1


@pytest.mark.asyncio
async def test_unchanged_healthy_status_is_not_handed_off(pool, queue, executor, make_monitor) -> None:
    await make_monitor()
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.UP)

    await pool.process_batch(QueueNames.MONITOR_CHECKS, wait_seconds=0)

    assert pool.alerts_handed_off == 0
    assert (await queue.attributes(QueueNames.ALERTS)).depth == 0


@pytest.mark.asyncio
async def test_repeated_failure_is_handed_off(pool, queue, executor, make_monitor) -> None:
    await make_monitor(status=MonitorStatus.DOWN.value)
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.DOWN)

    await pool.process_batch(QueueNames.PRIORITY_CHECKS, wait_seconds=0)

    assert pool.alerts_handed_off == 1
    assert (await queue.attributes(QueueNames.ALERTS)).depth == 1


@pytest.mark.asyncio
async def test_redelivered_check_records_a_second_history_row(
    pool, store, queue, queue_clock, clock, executor, make_monitor
) -> None:
    monitor = await make_monitor()
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.DOWN, MonitorStatus.UP)

    async def crash_after_persist(received):
        await pool.handle_monitor_check(received)
        raise RuntimeError("worker crashed")

    [first] = await pool.process_batch(QueueNames.MONITOR_CHECKS, handler=crash_after_persist, wait_seconds=0)
    assert not first.success
    assert first.error == "worker crashed"
    assert pool.failed == 1

    queue_clock.advance(61)
    clock.advance(minutes=1)
    [second] = await pool.process_batch(QueueNames.MONITOR_CHECKS, wait_seconds=0)
    assert second.success

    rows = await store.recent_history(monitor.id, 10)
    assert [row.status for row in rows] == ["up", "down"]
    refreshed = await store.get_monitor(monitor.id)
    assert refreshed.status == "up"
    assert refreshed.last_checked_at == clock()
    assert (await queue.attributes(QueueNames.MONITOR_CHECKS)).in_flight == 0


@pytest.mark.asyncio
async def test_inactive_monitor_is_acknowledged_without_check(pool, store, queue, executor, make_monitor) -> None:
    monitor = await make_monitor()
    await pool.scheduler.schedule_due_checks()
    await store.update_monitor(monitor.id, is_active=False)

    [result] = await pool.process_batch(QueueNames.MONITOR_CHECKS, wait_seconds=0)

    assert result.success
    assert "skipped" in result.details
    assert executor.calls == []
    assert (await queue.attributes(QueueNames.MONITOR_CHECKS)).in_flight == 0
    assert await store.recent_history(monitor.id, 10) == []


@pytest.mark.asyncio
async def test_missing_monitor_alert_is_acknowledged(pool, queue) -> None:
    await queue.send(QueueNames.ALERTS, alert_message("no-such-monitor"))

    [result] = await pool.process_batch(QueueNames.ALERTS, wait_seconds=0)

    assert result.success
    assert result.details == {"skipped": "monitor missing or inactive"}


# ---------------------------------------------------------------------------
# ALERT_PROCESSING
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_alert_message_is_evaluated(pool, store, provider, executor, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor)
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.DOWN)

    await pool.process_batch(QueueNames.MONITOR_CHECKS, wait_seconds=0)
    [result] = await pool.process_batch(QueueNames.ALERTS, wait_seconds=0)

    assert result.details == {"alerts_sent": 1, "alerts_skipped": 0, "alerts_failed": 0}
    assert provider.sent[0].trigger_status == "down"
    assert provider.sent[0].previous_status == "up"
    [log] = await store.alert_logs_for_monitor(monitor.id)
    assert log.status == "sent"


@pytest.mark.asyncio
async def test_failed_alert_is_redelivered_and_retried(
    pool, store, queue, queue_clock, provider, executor, make_monitor, make_rule
) -> None:
    monitor = await make_monitor()
    await make_rule(monitor)
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.DOWN)
    await pool.process_batch(QueueNames.MONITOR_CHECKS, wait_seconds=0)

    provider.fail_with = "503 from receiver"
    [first] = await pool.process_batch(QueueNames.ALERTS, wait_seconds=0)

    assert not first.success
    assert first.details["alerts_failed"] == 1
    attrs = await queue.attributes(QueueNames.ALERTS)
    assert (attrs.depth, attrs.in_flight) == (0, 1)

    # Visible again after the 120s alert visibility timeout
    provider.fail_with = None
    queue_clock.advance(121)
    [retry] = await pool.process_batch(QueueNames.ALERTS, wait_seconds=0)

    assert retry.success
    assert retry.details == {"alerts_sent": 1, "alerts_skipped": 0, "alerts_failed": 0}
    assert len(provider.sent) == 1
    [log] = await store.alert_logs_for_monitor(monitor.id)
    assert log.status == "sent"
    attrs = await queue.attributes(QueueNames.ALERTS)
    assert (attrs.depth, attrs.in_flight) == (0, 0)


@pytest.mark.asyncio
async def test_task_dispatch_mode_skips_the_alert_queue(make_pool, queue, provider, executor, make_monitor, make_rule) -> None:
    pool = make_pool(alerts=AlertSettings(dispatch_mode="task"))
    monitor = await make_monitor()
    await make_rule(monitor)
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.TIMEOUT)

    await pool.process_batch(QueueNames.MONITOR_CHECKS, wait_seconds=0)
    await pool.drain()

    assert len(provider.sent) == 1
    assert provider.sent[0].trigger_status == "timeout"
    assert (await queue.attributes(QueueNames.ALERTS)).depth == 0


def test_alert_message_counts_failures_from_snapshot(clock) -> None:
    snapshot = MonitorSnapshot(id="m-1", user_id="user-1", name="Example", url="https://example.com", status="down")
    result = CheckResult(status=MonitorStatus.DOWN, response_time=300, status_code=502, checked_at=clock())

    message = WorkerPool.build_alert_message(snapshot, result, 17, ["down", "down", "up"], "schedule-2026-01-05")

    assert message.source == "uptime-pulse-worker"
    assert message.correlation_id == "schedule-2026-01-05"
    assert message.payload.alert_context.consecutive_failures == 2
    assert message.payload.alert_context.status_change_at == "2026-01-05T12:00:00.000Z"
    assert message.payload.metadata.check_duration == 300


# ---------------------------------------------------------------------------
# Sequential processing
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_failure_holds_back_rest_of_group(pool, queue) -> None:
    await queue.send(QueueNames.ALERTS, alert_message("m-1"))
    await queue.send(QueueNames.ALERTS, alert_message("m-1"))
    await queue.send(QueueNames.ALERTS, alert_message("m-2"))
    handled = []

    async def fail_first(received):
        handled.append(received.message.payload.monitor_id)
        return ProcessingResult(len(handled) > 1, received.message_id)

    results = await pool.process_batch(QueueNames.ALERTS, handler=fail_first, wait_seconds=0)

    assert [r.success for r in results] == [False, False, True]
    assert results[1].error.startswith("Held back")
    assert handled == ["m-1", "m-2"]
    attrs = await queue.attributes(QueueNames.ALERTS)
    assert (attrs.depth, attrs.in_flight) == (0, 2)


# ---------------------------------------------------------------------------
# BULK_SCHEDULE and DLQ_REVIEW
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_bulk_schedule_message_runs_a_pass(pool, queue, make_monitor) -> None:
    await make_monitor()
    await make_monitor(user_id="user-2")
    await queue.send(
        QueueNames.SCHEDULER,
        pool.scheduler.build_bulk_schedule_message(filters={"user_id": "user-2"}),
    )

    [result] = await pool.process_batch(QueueNames.SCHEDULER, wait_seconds=0)

    assert result.success
    assert result.details["enqueued"] == 1
    assert (await queue.attributes(QueueNames.MONITOR_CHECKS)).depth == 1


@pytest.mark.asyncio
async def test_bulk_schedule_without_scheduler_is_not_acknowledged(store, queue, registry, clock, executor) -> None:
    pool = WorkerPool(queue, store, executor, AlertEvaluator(store, registry, clock=clock))
    await queue.send(
        QueueNames.SCHEDULER,
        CheckScheduler(store, queue, clock=clock).build_bulk_schedule_message(),
    )

    [result] = await pool.process_batch(QueueNames.SCHEDULER, wait_seconds=0)

    assert not result.success
    assert (await queue.attributes(QueueNames.SCHEDULER)).in_flight == 1


@pytest.mark.asyncio
async def test_dlq_review_is_logged_and_acknowledged(pool, queue) -> None:
    await queue.send(
        QueueNames.DLQ_STANDARD,
        DLQMessage(
            payload=DLQPayload(
                failure_reason="handler raised",
                failure_timestamp="2026-01-05T12:00:00.000Z",
                original_queue=QueueNames.PRIORITY_CHECKS,
            )
        ),
    )

    [result] = await pool.process_batch(QueueNames.DLQ_STANDARD, wait_seconds=0)

    assert result.success
    assert result.details == {"original_queue": QueueNames.PRIORITY_CHECKS}
    assert (await queue.attributes(QueueNames.DLQ_STANDARD)).in_flight == 0


# ---------------------------------------------------------------------------
# Profiles and lifecycle
# ---------------------------------------------------------------------------
def test_profiles_take_concurrency_from_settings(make_pool) -> None:
    pool = make_pool(worker=WorkerSettings(parallel_workers=12, visibility_heartbeat=20))

    assert pool.profile(QueueNames.MONITOR_CHECKS).parallel_workers == 12
    assert pool.profile(QueueNames.ALERTS).parallel_workers == 1
    assert pool.profile(QueueNames.ALERTS).visibility_heartbeat == 20


@pytest.mark.asyncio
async def test_receive_loop_processes_until_stopped(pool, queue, executor, make_monitor) -> None:
    await make_monitor(status=MonitorStatus.DOWN.value, interval_minutes=5)
    await pool.scheduler.schedule_due_checks()
    executor.push(MonitorStatus.UP)

    await pool.start([QueueNames.PRIORITY_CHECKS])
    for _ in range(200):
        if pool.succeeded:
            break
        await asyncio.sleep(0.01)
    await pool.stop()

    health = pool.health_check()
    assert health["succeeded"] == 1
    assert health["running"] is False
    assert health["queues"] == []
