"""Tests for alert rule evaluation, cooldown and dispatch.

Each check is recorded the way the worker records it (monitor status,
history row) and then handed to the evaluator with the newest-first
history, so consecutive-failure counting works on real rows.
"""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest

from config.constants import AlertLogStatus, MonitorStatus
from monitoring.alerts import AlertEvaluator, MonitorSnapshot, count_consecutive_failures
from monitoring.checker import CheckResult


@pytest.fixture
def evaluator(store, registry, clock) -> AlertEvaluator:
    return AlertEvaluator(store, registry, clock=clock)


@pytest.fixture
def run_check(store, evaluator, clock):
    """Record one check of a monitor and evaluate it; the clock then moves one minute."""

    async def _run(monitor_id: str, status: str):
        monitor = await store.get_monitor(monitor_id)
        old_status = monitor.status
        result = CheckResult(
            status=MonitorStatus(status),
            response_time=250,
            status_code=200 if status == "up" else None,
            error_message=None if status == "up" else f"{status} for test",
            checked_at=clock(),
        )
        await store.update_monitor(monitor_id, status=status, last_checked_at=clock())
        row = await store.insert_history(result.to_history_record(monitor.id, monitor.user_id))
        history = await store.recent_history(monitor_id, 10)

        dispatch = await evaluator.evaluate_and_dispatch(
            MonitorSnapshot.from_monitor(monitor, status=old_status),
            result,
            history,
            row.id,
        )
        clock.advance(minutes=1)
        return dispatch

    return _run


# ---------------------------------------------------------------------------
# Consecutive failures
# ---------------------------------------------------------------------------
def test_count_stops_at_first_success() -> None:
    assert count_consecutive_failures(["down", "down", "up", "down"]) == 2
    assert count_consecutive_failures(["timeout", "down", "down"]) == 3
    assert count_consecutive_failures(["up", "down"]) == 0


def test_count_is_at_least_one_for_a_failing_check() -> None:
    assert count_consecutive_failures([], current="down") == 1
    assert count_consecutive_failures(["up"], current="timeout") == 1
    assert count_consecutive_failures([], current="up") == 0


def test_count_accepts_history_rows() -> None:
    rows = [SimpleNamespace(status="down"), SimpleNamespace(status="up")]
    assert count_consecutive_failures(rows) == 1


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_first_failure_alerts_with_threshold_one(run_check, store, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor)

    dispatch = await run_check(monitor.id, "down")

    assert dispatch.to_dict() == {"alerts_sent": 1, "alerts_skipped": 0, "alerts_failed": 0}
    [log] = await store.alert_logs_for_monitor(monitor.id)
    assert log.status == AlertLogStatus.SENT.value
    assert log.trigger_status == "down"
    assert log.previous_status == "up"
    assert log.consecutive_failures == 1
    assert log.alert_type == "webhook"
    assert log.provider_message_id == "test-1"
    assert log.sent_at is not None
    assert provider.sent[0].monitor_name == "Example API"


@pytest.mark.asyncio
async def test_timeout_alert_respects_flag(run_check, store, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, alert_on_timeout=False)

    dispatch = await run_check(monitor.id, "timeout")

    assert dispatch.alerts_sent == 0
    assert dispatch.alerts_skipped == 0
    assert await store.alert_logs_for_monitor(monitor.id) == []


@pytest.mark.asyncio
async def test_threshold_three_with_cooldown(run_check, store, clock, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, consecutive_failures_threshold=3, cooldown_minutes=5)
    await run_check(monitor.id, "up")

    assert (await run_check(monitor.id, "down")).alerts_sent == 0
    assert (await run_check(monitor.id, "down")).alerts_sent == 0
    assert (await run_check(monitor.id, "down")).alerts_sent == 1

    # Still down one minute later: inside the cooldown window
    fourth = await run_check(monitor.id, "down")
    assert fourth.alerts_sent == 0
    assert fourth.alerts_skipped == 1

    # Once the window has passed the rule fires again
    clock.advance(minutes=5)
    assert (await run_check(monitor.id, "down")).alerts_sent == 1

    logs = await store.alert_logs_for_monitor(monitor.id)
    assert [log.consecutive_failures for log in logs] == [3, 5]


@pytest.mark.asyncio
async def test_outage_and_recovery_without_cooldown(run_check, store, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, consecutive_failures_threshold=3, cooldown_minutes=0)
    await run_check(monitor.id, "up")

    for _ in range(3):
        await run_check(monitor.id, "down")
    recovery = await run_check(monitor.id, "up")

    assert recovery.alerts_sent == 1
    logs = await store.alert_logs_for_monitor(monitor.id)
    assert [(log.trigger_status, log.consecutive_failures) for log in logs] == [("down", 3), ("up", 0)]
    assert logs[1].previous_status == "down"
    assert provider.sent[1].is_recovery


@pytest.mark.asyncio
async def test_recovery_not_sent_without_prior_outage_alert(run_check, store, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor(status=MonitorStatus.DOWN.value)
    await make_rule(monitor)

    dispatch = await run_check(monitor.id, "up")

    assert dispatch.to_dict() == {"alerts_sent": 0, "alerts_skipped": 0, "alerts_failed": 0}
    assert provider.sent == []


@pytest.mark.asyncio
async def test_recovery_sent_once_per_outage(run_check, store, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, consecutive_failures_threshold=2, cooldown_minutes=0)
    await run_check(monitor.id, "up")

    await run_check(monitor.id, "down")
    await run_check(monitor.id, "down")
    await run_check(monitor.id, "up")

    # A single failure below the threshold sends nothing, so no recovery is owed
    await run_check(monitor.id, "down")
    flap = await run_check(monitor.id, "up")

    assert flap.alerts_sent == 0
    logs = await store.alert_logs_for_monitor(monitor.id)
    assert [log.trigger_status for log in logs] == ["down", "up"]


@pytest.mark.asyncio
async def test_recovery_suppressed_by_cooldown(run_check, store, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, cooldown_minutes=5)

    await run_check(monitor.id, "down")
    recovery = await run_check(monitor.id, "up")

    assert recovery.alerts_skipped == 1
    logs = await store.alert_logs_for_monitor(monitor.id)
    assert [log.trigger_status for log in logs] == ["down"]


@pytest.mark.asyncio
async def test_up_to_up_never_alerts(run_check, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor)

    dispatch = await run_check(monitor.id, "up")

    assert dispatch.alerts_sent == 0
    assert provider.sent == []


@pytest.mark.asyncio
async def test_pending_monitor_failing_first_check_does_not_alert(run_check, store, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor(status=MonitorStatus.PENDING.value)
    await make_rule(monitor)

    first = await run_check(monitor.id, "down")
    second = await run_check(monitor.id, "timeout")

    assert first.to_dict() == {"alerts_sent": 0, "alerts_skipped": 0, "alerts_failed": 0}
    assert second.alerts_sent == 0
    assert provider.sent == []
    assert await store.alert_logs_for_monitor(monitor.id) == []


@pytest.mark.asyncio
async def test_outage_alerts_once_per_run_without_cooldown(run_check, store, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, cooldown_minutes=0)
    await run_check(monitor.id, "up")

    sent = [(await run_check(monitor.id, "down")).alerts_sent for _ in range(4)]

    assert sent == [1, 0, 0, 0]
    [log] = await store.alert_logs_for_monitor(monitor.id)
    assert log.consecutive_failures == 1
    assert len(provider.sent) == 1


@pytest.mark.asyncio
async def test_new_outage_after_recovery_alerts_again(run_check, store, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, cooldown_minutes=0)

    await run_check(monitor.id, "down")
    await run_check(monitor.id, "down")
    await run_check(monitor.id, "up")
    second_outage = await run_check(monitor.id, "timeout")

    assert second_outage.alerts_sent == 1
    logs = await store.alert_logs_for_monitor(monitor.id)
    assert [log.trigger_status for log in logs] == ["down", "up", "timeout"]


@pytest.mark.asyncio
async def test_outage_longer_than_history_window_uses_last_healthy_check(
    run_check, make_monitor, make_rule
) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, consecutive_failures_threshold=10, cooldown_minutes=0)
    await run_check(monitor.id, "up")

    sent = [(await run_check(monitor.id, "down")).alerts_sent for _ in range(13)]

    # run_check passes ten rows: from the tenth failure on they are all failures
    assert sent[9] == 1
    assert sum(sent) == 1

# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_unverified_or_inactive_channels_are_ignored(run_check, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, channel={"is_verified": False})
    await make_rule(monitor, channel={"is_active": False})
    await make_rule(monitor, is_active=False)

    dispatch = await run_check(monitor.id, "down")

    assert dispatch.alerts_sent == 0
    assert provider.sent == []


@pytest.mark.asyncio
async def test_failing_rule_does_not_block_others(run_check, store, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    broken = await make_rule(monitor, channel={"config": {"webhook_url": "ftp://hooks.example.com"}})
    await make_rule(monitor)

    dispatch = await run_check(monitor.id, "down")

    assert dispatch.alerts_sent == 1
    assert dispatch.alerts_failed == 1
    logs = {log.monitor_alert_rule_id: log for log in await store.alert_logs_for_monitor(monitor.id)}
    assert logs[broken.id].status == AlertLogStatus.FAILED.value
    assert "HTTP or HTTPS" in logs[broken.id].error_message


@pytest.mark.asyncio
async def test_failed_attempt_does_not_start_cooldown(run_check, provider, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor, cooldown_minutes=30)
    await run_check(monitor.id, "up")

    provider.fail_with = "503 from receiver"
    assert (await run_check(monitor.id, "down")).alerts_failed == 1

    provider.fail_with = None
    assert (await run_check(monitor.id, "down")).alerts_sent == 1


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_redelivered_evaluation_does_not_resend(store, evaluator, provider, clock, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor)
    result = CheckResult(status=MonitorStatus.DOWN, response_time=90, checked_at=clock())
    row = await store.insert_history(result.to_history_record(monitor.id, monitor.user_id))
    snapshot = MonitorSnapshot.from_monitor(monitor, status="up")

    first = await evaluator.evaluate_and_dispatch(snapshot, result, ["down"], row.id)
    second = await evaluator.evaluate_and_dispatch(snapshot, result, ["down"], row.id)

    assert first.alerts_sent == 1
    assert second.alerts_skipped == 1
    assert len(provider.sent) == 1
    assert len(await store.alert_logs_for_monitor(monitor.id)) == 1


@pytest.mark.asyncio
async def test_failed_attempt_is_retried_on_the_same_log(store, evaluator, provider, clock, make_monitor, make_rule) -> None:
    monitor = await make_monitor()
    await make_rule(monitor)
    result = CheckResult(status=MonitorStatus.DOWN, response_time=90, checked_at=clock())
    row = await store.insert_history(result.to_history_record(monitor.id, monitor.user_id))
    snapshot = MonitorSnapshot.from_monitor(monitor, status="up")

    provider.fail_with = "connection reset"
    await evaluator.evaluate_and_dispatch(snapshot, result, ["down"], row.id)
    provider.fail_with = None
    retry = await evaluator.evaluate_and_dispatch(snapshot, result, ["down"], row.id)

    assert retry.alerts_sent == 1
    [log] = await store.alert_logs_for_monitor(monitor.id)
    assert log.status == AlertLogStatus.SENT.value
    assert log.idempotency_key == f"check-{row.id}:rule-{log.monitor_alert_rule_id}"


@pytest.mark.asyncio
async def test_cooldown_counts_from_the_retried_send(store, evaluator, provider, clock, make_monitor, make_rule) -> None:
    start = clock()
    monitor = await make_monitor()
    await make_rule(monitor, cooldown_minutes=10)
    outage = CheckResult(status=MonitorStatus.DOWN, response_time=90, checked_at=clock())
    outage_row = await store.insert_history(outage.to_history_record(monitor.id, monitor.user_id))

    provider.fail_with = "connection reset"
    await evaluator.evaluate_and_dispatch(
        MonitorSnapshot.from_monitor(monitor, status="up"), outage, ["down"], outage_row.id
    )
    provider.fail_with = None
    clock.advance(minutes=8)
    retry = await evaluator.evaluate_and_dispatch(
        MonitorSnapshot.from_monitor(monitor, status="up"), outage, ["down"], outage_row.id
    )
    assert retry.alerts_sent == 1

    # Created 13 minutes ago but sent 5 minutes ago: still inside the window
    clock.advance(minutes=5)
    recovered = CheckResult(status=MonitorStatus.UP, response_time=80, checked_at=clock())
    recovered_row = await store.insert_history(recovered.to_history_record(monitor.id, monitor.user_id))
    recovery = await evaluator.evaluate_and_dispatch(
        MonitorSnapshot.from_monitor(monitor, status="down"), recovered, ["up", "down"], recovered_row.id
    )

    assert recovery.to_dict() == {"alerts_sent": 0, "alerts_skipped": 1, "alerts_failed": 0}
    [log] = await store.alert_logs_for_monitor(monitor.id)
    assert log.created_at == start
    assert log.sent_at == start + timedelta(minutes=8)
