"""
Queue Client Interface for Uptime Pulse

Named queues with at-least-once delivery, visibility timeouts,
per-group ordering on FIFO queues and dead-letter queues.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from config.constants import QUEUE_DEFINITIONS, MessageType, QueueDefinition, QueueNames
from exceptions import QueueException, QueueNotConfiguredError
from queues.messages import AlertProcessingMessage, MessageEnvelope, ReceivedMessage
from utils.logger import get_logger


MONITOR_CHECKS_GROUP = "monitor-checks"
DEFAULT_GROUP = "default"


@dataclass
class QueueAttributes:
    """
    Point-in-time queue metrics.

    Attributes:
        depth: Messages available for receive
        in_flight: Received but not yet deleted
        delayed: Not yet visible
        oldest_age_seconds: Age of the oldest message, 0 when empty
    """

    depth: int = 0
    in_flight: int = 0
    delayed: int = 0
    oldest_age_seconds: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def message_group_id(message: MessageEnvelope) -> str:
    """
    FIFO group of a message.

    Check messages share one stream; alert messages are grouped per
    monitor so alerts of one monitor are processed in order while
    different monitors proceed independently.
    """
    message_type = getattr(message, "message_type", None)
    if message_type == MessageType.MONITOR_CHECK.value:
        return MONITOR_CHECKS_GROUP
    if message_type == MessageType.ALERT_PROCESSING.value and isinstance(message, AlertProcessingMessage):
        return f"monitor-{message.payload.monitor_id}"
    return DEFAULT_GROUP


class QueueClient(ABC):
    """
    Abstract queue service.

    Deleting a message is the acknowledgment. A message that is not
    deleted becomes visible again after its visibility timeout and is
    moved to the dead-letter queue once it exceeds max receive count.
    """

    def __init__(self, definitions: Optional[Mapping[str, QueueDefinition]] = None):
        self.definitions: Dict[str, QueueDefinition] = dict(definitions or QUEUE_DEFINITIONS)
        self.logger = get_logger(self.__class__.__name__)

    def definition(self, queue_name: str) -> QueueDefinition:
        try:
            return self.definitions[queue_name]
        except KeyError:
            raise QueueNotConfiguredError(
                f"Unknown queue: {queue_name}",
                queue_name=queue_name
            ) from None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @abstractmethod
    async def send(
        self,
        queue_name: str,
        message: MessageEnvelope,
        attributes: Optional[Mapping[str, str]] = None
    ) -> str:
        """
        Enqueue one message.

        Returns:
            Queue-assigned message id

        Raises:
            MessageSendError: The queue service rejected the message
        """

    @abstractmethod
    async def send_batch(
        self,
        queue_name: str,
        entries: Sequence[Tuple[MessageEnvelope, Optional[Mapping[str, str]]]]
    ) -> List[str]:
        """Enqueue between 1 and 10 messages."""

    @abstractmethod
    async def receive_batch(
        self,
        queue_name: str,
        max_messages: int = 1,
        wait_seconds: int = 0
    ) -> List[ReceivedMessage]:
        """
        Long-poll for up to ``max_messages`` messages.

        Blocks up to ``wait_seconds`` when the queue is empty. Bodies that
        fail to parse are skipped and left to redeliver.
        """

    @abstractmethod
    async def delete(self, queue_name: str, receipt_handle: str) -> None:
        """Acknowledge a received message."""

    @abstractmethod
    async def extend_visibility(
        self,
        queue_name: str,
        receipt_handle: str,
        visibility_timeout: int
    ) -> None:
        """Keep a received message hidden for ``visibility_timeout`` more seconds."""

    @abstractmethod
    async def attributes(self, queue_name: str) -> QueueAttributes:
        """Current depth and oldest message age of a queue."""

    async def close(self) -> None:
        """Release client resources."""

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def monitored_queues(self) -> List[str]:
        """Queues reported by ``system_health``."""
        return list(self.definitions)

    async def system_health(self) -> Dict[str, Any]:
        """
        Attributes of every monitored queue.

        Returns:
            ``{"healthy": bool, "dead_lettered": int, "queues": {name: attributes or error}}``
        """
        queues: Dict[str, Any] = {}
        healthy = True

        for queue_name in self.monitored_queues():
            try:
                queues[queue_name] = (await self.attributes(queue_name)).to_dict()
            except QueueException as e:
                healthy = False
                queues[queue_name] = {"error": e.message}
                self.logger.warning(f"[Queue] Health check failed for {queue_name}: {e.message}")

        dead_lettered = sum(
            queues[name].get("depth", 0)
            for name in QueueNames.dead_letter_queues()
            if name in queues
        )

        return {
            "healthy": healthy,
            "dead_lettered": dead_lettered,
            "queues": queues
        }
