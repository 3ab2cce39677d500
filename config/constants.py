"""
Constants Module for Uptime Pulse

Contains enumerations, queue definitions and static defaults
used throughout the check and alert pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Final, FrozenSet, Optional


class MonitorStatus(str, Enum):
    """
    Monitor Status Enumeration

    Last known state of a monitored endpoint.
    """

    UP = "up"
    DOWN = "down"
    TIMEOUT = "timeout"
    PENDING = "pending"
    UNKNOWN = "unknown"

    @classmethod
    def failures(cls) -> FrozenSet["MonitorStatus"]:
        """Statuses that count as a failed check."""
        return frozenset({cls.DOWN, cls.TIMEOUT})

    @classmethod
    def is_failure(cls, status: Optional[str]) -> bool:
        """Check if a status is a failed check result."""
        return status in (cls.DOWN.value, cls.TIMEOUT.value)

    @classmethod
    def get_emoji(cls, status: str) -> str:
        """Get emoji for status."""
        emojis = {
            cls.UP.value: "🟢",
            cls.DOWN.value: "🔴",
            cls.TIMEOUT.value: "🟡",
            cls.PENDING.value: "⏳",
            cls.UNKNOWN.value: "⚪",
        }
        return emojis.get(status, "❓")


class Priority(str, Enum):
    """Scheduling priority of a check message."""

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def is_urgent(self) -> bool:
        """Critical and high checks go to the low-latency queue."""
        return self in (Priority.CRITICAL, Priority.HIGH)


class MessageType(str, Enum):
    """Discriminator of every queue message."""

    MONITOR_CHECK = "MONITOR_CHECK"
    ALERT_PROCESSING = "ALERT_PROCESSING"
    BULK_SCHEDULE = "BULK_SCHEDULE"
    DLQ_REVIEW = "DLQ_REVIEW"


class ChannelType(str, Enum):
    """Notification channel kinds."""

    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"


class AlertLogStatus(str, Enum):
    """Lifecycle of one dispatch attempt."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ProcessingStrategy(str, Enum):
    """How a worker handles the messages of one received batch."""

    INDEPENDENT = "independent"
    SEQUENTIAL = "sequential"


class QueueNames:
    """
    Queue Names

    FIFO queues carry the ``.fifo`` suffix required by SQS.
    """

    MONITOR_CHECKS: Final[str] = "pulse-monitor-checks.fifo"
    PRIORITY_CHECKS: Final[str] = "pulse-priority-checks"
    ALERTS: Final[str] = "pulse-alerts.fifo"
    SCHEDULER: Final[str] = "pulse-scheduler"
    DLQ_FIFO: Final[str] = "pulse-dlq-fifo.fifo"
    DLQ_STANDARD: Final[str] = "pulse-dlq-standard"

    @classmethod
    def all(cls) -> tuple:
        return (
            cls.MONITOR_CHECKS,
            cls.PRIORITY_CHECKS,
            cls.ALERTS,
            cls.SCHEDULER,
            cls.DLQ_FIFO,
            cls.DLQ_STANDARD,
        )

    @classmethod
    def dead_letter_queues(cls) -> tuple:
        return (cls.DLQ_FIFO, cls.DLQ_STANDARD)


@dataclass(frozen=True)
class QueueDefinition:
    """
    Static configuration of one queue.

    Attributes:
        name: Queue name
        fifo: Strict ordering per message group
        visibility_timeout: Seconds a received message stays hidden
        message_retention: Seconds before an unconsumed message expires
        max_receive_count: Receives before the message is dead-lettered
        dead_letter_queue: Name of the DLQ, None for DLQs themselves
    """

    name: str
    fifo: bool = False
    visibility_timeout: int = 60
    message_retention: int = 345600
    max_receive_count: int = 3
    dead_letter_queue: Optional[str] = None


@dataclass(frozen=True)
class ProcessingProfile:
    """
    How the worker pool consumes one queue.

    Attributes:
        batch_size: Messages per receive call (at most 10)
        wait_seconds: Long-poll wait per receive call
        strategy: Independent fan-out or one-at-a-time
        parallel_workers: Concurrency cap for independent batches
        visibility_heartbeat: Extend visibility every N seconds (0 = off)
    """

    batch_size: int = 10
    wait_seconds: int = 20
    strategy: ProcessingStrategy = ProcessingStrategy.INDEPENDENT
    parallel_workers: int = 5
    visibility_heartbeat: int = 0


QUEUE_DEFINITIONS: Dict[str, QueueDefinition] = {
    QueueNames.MONITOR_CHECKS: QueueDefinition(
        name=QueueNames.MONITOR_CHECKS,
        fifo=True,
        visibility_timeout=60,
        dead_letter_queue=QueueNames.DLQ_FIFO,
    ),
    QueueNames.PRIORITY_CHECKS: QueueDefinition(
        name=QueueNames.PRIORITY_CHECKS,
        visibility_timeout=30,
        dead_letter_queue=QueueNames.DLQ_STANDARD,
    ),
    QueueNames.ALERTS: QueueDefinition(
        name=QueueNames.ALERTS,
        fifo=True,
        visibility_timeout=120,
        dead_letter_queue=QueueNames.DLQ_FIFO,
    ),
    QueueNames.SCHEDULER: QueueDefinition(
        name=QueueNames.SCHEDULER,
        visibility_timeout=300,
        max_receive_count=2,
        dead_letter_queue=QueueNames.DLQ_STANDARD,
    ),
    QueueNames.DLQ_FIFO: QueueDefinition(
        name=QueueNames.DLQ_FIFO,
        fifo=True,
        message_retention=1209600,
        max_receive_count=5,
    ),
    QueueNames.DLQ_STANDARD: QueueDefinition(
        name=QueueNames.DLQ_STANDARD,
        message_retention=1209600,
        max_receive_count=5,
    ),
}


PROCESSING_PROFILES: Dict[str, ProcessingProfile] = {
    QueueNames.MONITOR_CHECKS: ProcessingProfile(batch_size=10, wait_seconds=20),
    QueueNames.PRIORITY_CHECKS: ProcessingProfile(batch_size=10, wait_seconds=5),
    QueueNames.ALERTS: ProcessingProfile(
        batch_size=5,
        wait_seconds=10,
        strategy=ProcessingStrategy.SEQUENTIAL,
        parallel_workers=1,
    ),
    QueueNames.SCHEDULER: ProcessingProfile(
        batch_size=1,
        wait_seconds=20,
        strategy=ProcessingStrategy.SEQUENTIAL,
        parallel_workers=1,
    ),
    QueueNames.DLQ_FIFO: ProcessingProfile(
        batch_size=10,
        wait_seconds=20,
        strategy=ProcessingStrategy.SEQUENTIAL,
        parallel_workers=1,
    ),
    QueueNames.DLQ_STANDARD: ProcessingProfile(
        batch_size=10,
        wait_seconds=20,
        strategy=ProcessingStrategy.SEQUENTIAL,
        parallel_workers=1,
    ),
}


class Defaults:
    """
    Default Values

    Fallbacks used when a row or message leaves a field empty.
    """

    CHECK_TIMEOUT_SECONDS: Final[int] = 10
    MAX_RETRIES: Final[int] = 3
    MESSAGE_VERSION: Final[str] = "1.0"
    MESSAGE_SOURCE: Final[str] = "uptime-pulse-scheduler"
    WORKER_SOURCE: Final[str] = "uptime-pulse-worker"
    CONSECUTIVE_FAILURES_THRESHOLD: Final[int] = 1
    COOLDOWN_MINUTES: Final[int] = 5
    INTERVAL_MINUTES: Final[int] = 5
    USER_AGENT: Final[str] = "Uptime-Pulse-Monitor/1.0"


class Limits:
    """
    Queue Service Limits
    """

    MAX_BATCH_MESSAGES: Final[int] = 10
    MAX_WAIT_SECONDS: Final[int] = 20
    DEDUPLICATION_WINDOW_SECONDS: Final[int] = 300
    MAX_VISIBILITY_TIMEOUT: Final[int] = 43200
