"""
In-Memory Queue Client for Uptime Pulse

Process-local implementation of the queue semantics: visibility
timeouts, receive counting, dead-lettering, retention expiry, FIFO
groups with in-flight blocking, a five-minute deduplication window and
long polling. Used for development and tests.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from config.constants import Limits, QueueDefinition
from exceptions import MessageParseError, MessageSendError, QueueException
from queues.base import QueueAttributes, QueueClient, message_group_id
from queues.messages import MessageEnvelope, ReceivedMessage, parse_message, serialize_message
from utils.helpers import utcnow


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    attributes: Dict[str, str]
    group_id: Optional[str]
    sent_at: float
    visible_at: float
    receive_count: int = 0
    receipt_handle: Optional[str] = None

    def in_flight(self, now: float) -> bool:
        return self.receipt_handle is not None and self.visible_at > now


@dataclass
class _QueueState:
    definition: QueueDefinition
    messages: List[_StoredMessage] = field(default_factory=list)
    dedup: Dict[str, Tuple[float, str]] = field(default_factory=dict)
    arrival: asyncio.Event = field(default_factory=asyncio.Event)


class InMemoryQueueClient(QueueClient):
    """
    Queue service held in process memory.

    Args:
        definitions: Queue definitions, defaults to the standard set
        clock: Monotonic clock in seconds, injectable for tests
    """

    def __init__(
        self,
        definitions: Optional[Mapping[str, QueueDefinition]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        super().__init__(definitions)
        self._clock = clock
        self._queues: Dict[str, _QueueState] = {}
        self.sent_count = 0
        self.dead_lettered_count = 0

    def _state(self, queue_name: str) -> _QueueState:
        state = self._queues.get(queue_name)
        if state is None:
            state = _QueueState(definition=self.definition(queue_name))
            self._queues[queue_name] = state
        return state

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def send(
        self,
        queue_name: str,
        message: MessageEnvelope,
        attributes: Optional[Mapping[str, str]] = None
    ) -> str:
        state = self._state(queue_name)
        try:
            body = serialize_message(message)
        except (TypeError, ValueError) as e:
            raise MessageSendError(
                f"Cannot serialize message: {e}",
                queue_name=queue_name,
                message_id=message.message_id,
                cause=e
            ) from e

        return self._enqueue(
            state,
            body,
            dict(attributes or {}),
            message_group_id(message) if state.definition.fifo else None,
            message.message_id
        )

    def _enqueue(
        self,
        state: _QueueState,
        body: str,
        attributes: Dict[str, str],
        group_id: Optional[str],
        dedup_id: Optional[str]
    ) -> str:
        now = self._clock()

        if state.definition.fifo and dedup_id:
            self._prune_dedup(state, now)
            seen = state.dedup.get(dedup_id)
            if seen is not None:
                self.logger.debug(f"[Queue] Duplicate {dedup_id} on {state.definition.name} ignored")
                return seen[1]

        queue_message_id = str(uuid.uuid4())
        state.messages.append(
            _StoredMessage(
                message_id=queue_message_id,
                body=body,
                attributes=attributes,
                group_id=group_id,
                sent_at=now,
                visible_at=now
            )
        )
        if state.definition.fifo and dedup_id:
            state.dedup[dedup_id] = (now, queue_message_id)

        self.sent_count += 1
        state.arrival.set()
        return queue_message_id

    @staticmethod
    def _prune_dedup(state: _QueueState, now: float) -> None:
        expired = [
            key for key, (seen_at, _) in state.dedup.items()
            if now - seen_at >= Limits.DEDUPLICATION_WINDOW_SECONDS
        ]
        for key in expired:
            del state.dedup[key]

    async def send_batch(
        self,
        queue_name: str,
        entries: Sequence[Tuple[MessageEnvelope, Optional[Mapping[str, str]]]]
    ) -> List[str]:
        if not entries or len(entries) > Limits.MAX_BATCH_MESSAGES:
            raise MessageSendError(
                f"Batch size must be between 1 and {Limits.MAX_BATCH_MESSAGES} messages",
                queue_name=queue_name
            )
        return [await self.send(queue_name, message, attributes) for message, attributes in entries]

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    async def receive_batch(
        self,
        queue_name: str,
        max_messages: int = 1,
        wait_seconds: int = 0
    ) -> List[ReceivedMessage]:
        state = self._state(queue_name)
        max_messages = max(1, min(max_messages, Limits.MAX_BATCH_MESSAGES))
        wait_seconds = max(0, min(wait_seconds, Limits.MAX_WAIT_SECONDS))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds

        while True:
            state.arrival.clear()
            delivered = self._collect(state, max_messages)
            if delivered:
                return delivered

            remaining = deadline - loop.time()
            if remaining <= 0:
                return []

            # Wake on a new message or when an in-flight message becomes visible again
            next_visible = self._next_visibility_change(state)
            timeout = remaining if next_visible is None else min(remaining, max(next_visible, 0.01))
            try:
                await asyncio.wait_for(state.arrival.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

    def _next_visibility_change(self, state: _QueueState) -> Optional[float]:
        now = self._clock()
        pending = [m.visible_at - now for m in state.messages if m.in_flight(now)]
        return min(pending) if pending else None

    def _collect(self, state: _QueueState, max_messages: int) -> List[ReceivedMessage]:
        now = self._clock()
        definition = state.definition
        self._expire(state, now)

        blocked_groups: Set[str] = set()
        if definition.fifo:
            blocked_groups = {
                m.group_id for m in state.messages
                if m.in_flight(now) and m.group_id is not None
            }

        delivered: List[ReceivedMessage] = []
        for stored in list(state.messages):
            if len(delivered) >= max_messages:
                break
            if stored.in_flight(now):
                continue
            if definition.fifo and stored.group_id in blocked_groups:
                continue

            if stored.receive_count >= definition.max_receive_count and definition.dead_letter_queue:
                self._dead_letter(state, stored)
                continue

            stored.receive_count += 1
            stored.receipt_handle = str(uuid.uuid4())
            stored.visible_at = now + definition.visibility_timeout

            try:
                message = parse_message(stored.body)
            except MessageParseError as e:
                self.logger.warning(
                    f"[Queue] Skipping unparseable message {stored.message_id} "
                    f"on {definition.name}: {e.message}"
                )
                if definition.fifo and stored.group_id is not None:
                    blocked_groups.add(stored.group_id)
                continue

            delivered.append(
                ReceivedMessage(
                    message=message,
                    receipt_handle=stored.receipt_handle,
                    queue_name=definition.name,
                    receive_count=stored.receive_count,
                    attributes=dict(stored.attributes),
                    sent_at=utcnow() - timedelta(seconds=now - stored.sent_at)
                )
            )

        return delivered

    def _expire(self, state: _QueueState, now: float) -> None:
        retention = state.definition.message_retention
        kept = [m for m in state.messages if now - m.sent_at < retention]
        dropped = len(state.messages) - len(kept)
        if dropped:
            self.logger.warning(f"[Queue] {dropped} message(s) expired on {state.definition.name}")
            state.messages = kept

    def _dead_letter(self, state: _QueueState, stored: _StoredMessage) -> None:
        dlq_name = state.definition.dead_letter_queue
        state.messages.remove(stored)
        dlq = self._state(dlq_name)

        attributes = dict(stored.attributes)
        attributes["SourceQueue"] = state.definition.name
        attributes["ReceiveCount"] = str(stored.receive_count)

        self._enqueue(
            dlq,
            stored.body,
            attributes,
            stored.group_id if dlq.definition.fifo else None,
            None
        )
        self.dead_lettered_count += 1
        self.logger.error(
            f"[Queue] Message {stored.message_id} moved from {state.definition.name} "
            f"to {dlq_name} after {stored.receive_count} receives"
        )

    # ------------------------------------------------------------------
    # Acknowledge / visibility
    # ------------------------------------------------------------------

    def _find(self, state: _QueueState, receipt_handle: str) -> Optional[_StoredMessage]:
        for stored in state.messages:
            if stored.receipt_handle == receipt_handle:
                return stored
        return None

    async def delete(self, queue_name: str, receipt_handle: str) -> None:
        state = self._state(queue_name)
        stored = self._find(state, receipt_handle)
        if stored is None:
            # Already deleted or redelivered under a newer handle
            self.logger.debug(f"[Queue] Delete with stale receipt handle on {queue_name}")
            return
        state.messages.remove(stored)

    async def extend_visibility(
        self,
        queue_name: str,
        receipt_handle: str,
        visibility_timeout: int
    ) -> None:
        state = self._state(queue_name)
        stored = self._find(state, receipt_handle)
        now = self._clock()
        if stored is None or not stored.in_flight(now):
            raise QueueException(
                "Message is not in flight",
                queue_name=queue_name
            )
        stored.visible_at = now + min(visibility_timeout, Limits.MAX_VISIBILITY_TIMEOUT)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def attributes(self, queue_name: str) -> QueueAttributes:
        state = self._state(queue_name)
        now = self._clock()
        self._expire(state, now)

        in_flight = sum(1 for m in state.messages if m.in_flight(now))
        oldest = min((m.sent_at for m in state.messages), default=None)

        return QueueAttributes(
            depth=len(state.messages) - in_flight,
            in_flight=in_flight,
            delayed=0,
            oldest_age_seconds=int(now - oldest) if oldest is not None else 0
        )
