"""
============================================================================
UPTIME PULSE - MONITORING PACKAGE
============================================================================
Runtime pipeline of the service:
    • CheckScheduler       - selects due monitors and enqueues checks
    • HealthCheckExecutor  - bounded-timeout HTTP checks
    • WorkerPool           - queue consumers and message handlers
    • AlertEvaluator       - rule evaluation, cooldown, dispatch
    • JobRunner            - periodic jobs (scheduling pass, housekeeping)
    • HealthServer         - aiohttp liveness / health / queue endpoints

monitoring/
├── __init__.py          ← this file
├── scheduler.py         ← CheckScheduler + priority classification
├── checker.py           ← HealthCheckExecutor + CheckResult
├── worker.py            ← WorkerPool + ProcessingResult
├── alerts.py            ← AlertEvaluator
├── jobs.py              ← JobRunner + ScheduledJob
└── health.py            ← HealthServer
============================================================================
"""

from monitoring.checker import CheckResult, HealthCheckExecutor
from monitoring.scheduler import CheckScheduler, ScheduleResult, classify_priority, select_queue
from monitoring.alerts import (
    AlertDispatchResult,
    AlertEvaluator,
    MonitorSnapshot,
    count_consecutive_failures
)
from monitoring.worker import ProcessingResult, WorkerPool
from monitoring.jobs import JobRunner, ScheduledJob
from monitoring.health import HealthServer

__all__ = [
    # Checks
    "CheckResult",
    "HealthCheckExecutor",

    # Scheduling
    "CheckScheduler",
    "ScheduleResult",
    "classify_priority",
    "select_queue",

    # Alerts
    "AlertDispatchResult",
    "AlertEvaluator",
    "MonitorSnapshot",
    "count_consecutive_failures",

    # Workers
    "ProcessingResult",
    "WorkerPool",

    # Jobs & health
    "JobRunner",
    "ScheduledJob",
    "HealthServer",
]
