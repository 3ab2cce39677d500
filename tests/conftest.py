"""Shared pytest fixtures.

- clock: controllable naive-UTC clock shared by scheduler and evaluator
- db_manager / store: file-backed SQLite datastore per test
- queue: in-memory queue service with a controllable monotonic clock
- provider / registry: recording webhook provider
- executor: scripted health check results
- make_monitor / make_rule: row factories
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from config.constants import ChannelType, MonitorStatus
from config.settings import DatabaseSettings
from database.manager import DatabaseManager
from database.models import Monitor, MonitorAlertRule, NotificationChannel
from database.store import Datastore
from monitoring.checker import CheckResult
from notifications.base import (
    NotificationContext,
    NotificationOutcome,
    NotificationProvider,
    ProviderRegistry
)
from queues.memory import InMemoryQueueClient


START = datetime(2026, 1, 5, 12, 0, 0)


class FakeClock:
    """Naive UTC clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class MonotonicClock:
    """Stand-in for time.monotonic used by the in-memory queue."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class RecordingProvider(NotificationProvider):
    """Webhook-typed provider that records contexts instead of sending."""

    channel_type = ChannelType.WEBHOOK

    def __init__(self) -> None:
        super().__init__(http_client=None)
        self.sent: List[NotificationContext] = []
        self.fail_with: Optional[str] = None

    async def _deliver(self, context: NotificationContext) -> NotificationOutcome:
        if self.fail_with:
            return NotificationOutcome.fail(self.fail_with)
        self.sent.append(context)
        return NotificationOutcome.ok(f"test-{len(self.sent)}")


class ScriptedExecutor:
    """Health check executor returning queued statuses in order."""

    def __init__(self, clock: FakeClock, statuses: Optional[List[MonitorStatus]] = None):
        self.clock = clock
        self.statuses = list(statuses or [])
        self.calls: List[str] = []

    def push(self, *statuses: MonitorStatus) -> None:
        self.statuses.extend(statuses)

    async def check(self, url: str, timeout_seconds: Optional[float] = None) -> CheckResult:
        self.calls.append(url)
        status = self.statuses.pop(0) if self.statuses else MonitorStatus.UP
        return CheckResult(
            status=status,
            response_time=42,
            status_code=200 if status == MonitorStatus.UP else 503,
            error_message=None if status == MonitorStatus.UP else "HTTP 503: Service Unavailable",
            checked_at=self.clock(),
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue_clock() -> MonotonicClock:
    return MonotonicClock()


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    manager = DatabaseManager(
        DatabaseSettings(url_override=f"sqlite+aiosqlite:///{tmp_path / 'pulse.db'}")
    )
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def store(db_manager: DatabaseManager) -> Datastore:
    return Datastore(db_manager)


@pytest.fixture
def queue(queue_clock: MonotonicClock) -> InMemoryQueueClient:
    return InMemoryQueueClient(clock=queue_clock)


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def registry(provider: RecordingProvider) -> ProviderRegistry:
    return ProviderRegistry({ChannelType.WEBHOOK: provider})


@pytest.fixture
def executor(clock: FakeClock) -> ScriptedExecutor:
    return ScriptedExecutor(clock)


@pytest.fixture
def make_monitor(db_manager: DatabaseManager, clock: FakeClock):
    """Insert a monitor; due one minute ago unless overridden."""

    async def _make(**overrides: Any) -> Monitor:
        values: Dict[str, Any] = {
            "user_id": "user-1",
            "name": "Example API",
            "url": "https://api.example.com/health",
            "interval_minutes": 10,
            "status": MonitorStatus.UP.value,
            "is_active": True,
            "next_check_at": clock() - timedelta(minutes=1),
            "created_at": clock() - timedelta(days=1),
        }
        values.update(overrides)
        monitor = Monitor(**values)
        async with db_manager.session() as session:
            session.add(monitor)
        return monitor

    return _make


@pytest.fixture
def make_rule(db_manager: DatabaseManager):
    """Insert a verified webhook channel and an alert rule for a monitor."""

    async def _make(monitor: Monitor, channel: Optional[Dict[str, Any]] = None, **overrides: Any) -> MonitorAlertRule:
        channel_values: Dict[str, Any] = {
            "user_id": monitor.user_id,
            "name": "Ops webhook",
            "type": ChannelType.WEBHOOK.value,
            "config": {"webhook_url": "https://hooks.example.com/pulse"},
            "is_active": True,
            "is_verified": True,
        }
        channel_values.update(channel or {})
        notification_channel = NotificationChannel(**channel_values)

        async with db_manager.session() as session:
            session.add(notification_channel)
            await session.flush()

            rule_values: Dict[str, Any] = {
                "monitor_id": monitor.id,
                "notification_channel_id": notification_channel.id,
                "user_id": monitor.user_id,
                "consecutive_failures_threshold": 1,
                "cooldown_minutes": 0,
            }
            rule_values.update(overrides)
            rule = MonitorAlertRule(**rule_values)
            session.add(rule)
        return rule

    return _make
