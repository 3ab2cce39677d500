"""Tests for the periodic job runner and the aiohttp health server."""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta

import pytest
from aiohttp.test_utils import TestClient, TestServer

from config.constants import MonitorStatus, QueueNames
from config.settings import SchedulerSettings, Settings
from monitoring.checker import CheckResult
from monitoring.health import HealthServer
from monitoring.jobs import JobRunner
from monitoring.scheduler import CheckScheduler
from utils.helpers import utcnow


BUILTIN_JOBS = ("schedule_checks", "queue_metrics", "history_retention", "heartbeat")


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def check_scheduler(store, queue, clock) -> CheckScheduler:
    return CheckScheduler(store, queue, SchedulerSettings(), clock=clock)


@pytest.fixture
def runner(settings, db_manager, store, queue, check_scheduler) -> JobRunner:
    return JobRunner(settings, db_manager, store, queue, check_scheduler)


# ---------------------------------------------------------------------------
# Job runner
# ---------------------------------------------------------------------------
def test_builtin_jobs_are_registered(runner) -> None:
    stats = {job["name"]: job for job in runner.get_job_stats()}

    assert set(stats) == set(BUILTIN_JOBS)
    assert stats["history_retention"]["interval_seconds"] == 86400
    assert all(job["enabled"] for job in stats.values())
    assert stats["heartbeat"]["last_run"] is None


def test_schedule_job_disabled_without_scheduler(settings, db_manager, store, queue) -> None:
    runner = JobRunner(settings, db_manager, store, queue)

    stats = {job["name"]: job for job in runner.get_job_stats()}

    assert stats["schedule_checks"]["enabled"] is False


@pytest.mark.asyncio
async def test_history_retention_deletes_old_rows(runner, store, make_monitor) -> None:
    monitor = await make_monitor()
    for age_days in (120, 91, 3):
        result = CheckResult(
            status=MonitorStatus.UP,
            response_time=80,
            checked_at=utcnow() - timedelta(days=age_days),
        )
        await store.insert_history(result.to_history_record(monitor.id, monitor.user_id))

    await runner.run_job("history_retention")

    [kept] = await store.recent_history(monitor.id, 10)
    assert kept.checked_at > utcnow() - timedelta(days=4)
    [stats] = [job for job in runner.get_job_stats() if job["name"] == "history_retention"]
    assert stats["run_count"] == 1
    assert stats["last_run"] is not None


@pytest.mark.asyncio
async def test_schedule_job_runs_a_pass(runner, queue, make_monitor) -> None:
    await make_monitor()

    await runner.run_job("schedule_checks")

    assert queue.sent_count == 1


@pytest.mark.asyncio
async def test_queue_metrics_reports_depth(runner, check_scheduler, make_monitor) -> None:
    await make_monitor()
    await check_scheduler.schedule_due_checks()

    health = await runner._job_queue_metrics()

    assert health["healthy"] is True
    assert health["dead_lettered"] == 0
    assert health["queues"][QueueNames.MONITOR_CHECKS]["depth"] == 1


@pytest.mark.asyncio
async def test_tick_skips_jobs_still_running(runner) -> None:
    for name in BUILTIN_JOBS:
        runner.disable_job(name)

    release = asyncio.Event()
    started = []

    async def slow_job():
        started.append(1)
        await release.wait()

    runner.register_job("slow", 30, slow_job)
    base = time.time() + 1

    assert runner.tick(now=base) == ["slow"]
    await asyncio.sleep(0)
    # Due again but the first run has not finished yet
    assert runner.tick(now=base + 100) == []

    release.set()
    await asyncio.sleep(0.01)
    assert started == [1]
    assert runner.tick(now=base + 200) == ["slow"]
    await runner.stop()


@pytest.mark.asyncio
async def test_failing_job_counts_errors(runner) -> None:
    async def broken():
        raise RuntimeError("boom")

    runner.register_job("broken", 60, broken)
    await runner.run_job("broken")

    [stats] = [job for job in runner.get_job_stats() if job["name"] == "broken"]
    assert stats["error_count"] == 1
    assert stats["run_count"] == 0
    assert stats["running"] is False


def test_enable_and_disable_unknown_job(runner) -> None:
    assert runner.disable_job("heartbeat") is True
    assert runner.enable_job("heartbeat") is True
    assert runner.disable_job("nope") is False


# ---------------------------------------------------------------------------
# Health server
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_health_endpoints(settings, queue, check_scheduler, runner, make_monitor) -> None:
    await make_monitor()
    server = HealthServer(settings, queue, check_scheduler=check_scheduler, job_runner=runner)

    async with TestClient(TestServer(server.app)) as client:
        root = await client.get("/")
        assert root.status == 200
        assert await root.text() == "OK"

        health = await client.get("/health")
        assert health.status == 200
        body = await health.json()
        assert body["status"] == "healthy"
        assert body["app_name"] == "Uptime Pulse"
        assert body["scheduler"]["monitors_due"] == 1
        assert {job["name"] for job in body["jobs"]} == set(BUILTIN_JOBS)
        assert "workers" not in body

        queues = await client.get("/queues")
        assert queues.status == 200
        payload = await queues.json()
        assert set(payload["queues"]) == set(QueueNames.all())
