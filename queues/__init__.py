"""
Queues Package for Uptime Pulse

Message models, the queue client interface and its in-memory and
AWS SQS implementations.
"""

from config.settings import QueueBackend, QueueSettings
from queues.base import QueueAttributes, QueueClient, message_group_id
from queues.memory import InMemoryQueueClient
from queues.messages import (
    AlertContext,
    AlertMetadata,
    AlertProcessingMessage,
    AlertProcessingPayload,
    BulkFilters,
    BulkScheduleMessage,
    BulkSchedulePayload,
    CheckConfig,
    DLQMessage,
    DLQPayload,
    MessageEnvelope,
    MonitorCheckMessage,
    MonitorCheckPayload,
    MonitorData,
    PreviousCheck,
    QueueMessage,
    ReceivedMessage,
    parse_message,
    serialize_message
)


def create_queue_client(settings: QueueSettings) -> QueueClient:
    """
    Build the queue client selected by ``QUEUE_BACKEND``.
    """
    if settings.backend == QueueBackend.SQS:
        from queues.sqs import SQSQueueClient
        return SQSQueueClient(settings)
    return InMemoryQueueClient()


__all__ = [
    "QueueAttributes",
    "QueueClient",
    "InMemoryQueueClient",
    "create_queue_client",
    "message_group_id",
    "AlertContext",
    "AlertMetadata",
    "AlertProcessingMessage",
    "AlertProcessingPayload",
    "BulkFilters",
    "BulkScheduleMessage",
    "BulkSchedulePayload",
    "CheckConfig",
    "DLQMessage",
    "DLQPayload",
    "MessageEnvelope",
    "MonitorCheckMessage",
    "MonitorCheckPayload",
    "MonitorData",
    "PreviousCheck",
    "QueueMessage",
    "ReceivedMessage",
    "parse_message",
    "serialize_message"
]
