"""
Queue Message Models for Uptime Pulse

Wire-level schema of every queue message. Bodies are camelCase JSON;
the ``messageType`` field selects one of four message kinds.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from config.constants import Defaults, MessageType, Priority
from exceptions import MessageParseError
from utils.helpers import TimeHelper, utcnow


def new_message_id() -> str:
    return str(uuid.uuid4())


def iso_now() -> str:
    return TimeHelper.to_iso(utcnow())


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore"
    )


class MessageEnvelope(WireModel):
    """Fields shared by every message kind."""

    message_id: str = Field(default_factory=new_message_id)
    version: str = Defaults.MESSAGE_VERSION
    timestamp: str = Field(default_factory=iso_now)
    source: str = Defaults.MESSAGE_SOURCE
    retry_count: int = 0
    max_retries: int = Defaults.MAX_RETRIES
    correlation_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


# ============================================================================
# MONITOR_CHECK
# ============================================================================

class MonitorData(WireModel):
    name: str
    url: str
    expected_status: str
    interval_minutes: int
    timeout_seconds: int = Defaults.CHECK_TIMEOUT_SECONDS
    headers: Optional[Dict[str, str]] = None


class CheckConfig(WireModel):
    priority: Priority
    scheduled_at: str
    expected_duration: int
    user_agent: str = Defaults.USER_AGENT


class PreviousCheck(WireModel):
    status: str
    response_time: Optional[int] = None
    checked_at: Optional[str] = None


class MonitorCheckPayload(WireModel):
    monitor_id: str
    user_id: str
    monitor_data: MonitorData
    check_config: CheckConfig
    previous_check: Optional[PreviousCheck] = None


class MonitorCheckMessage(MessageEnvelope):
    message_type: Literal["MONITOR_CHECK"] = MessageType.MONITOR_CHECK.value
    payload: MonitorCheckPayload


# ============================================================================
# ALERT_PROCESSING
# ============================================================================

class AlertContext(WireModel):
    """
    The status transition to evaluate.

    ``history_statuses`` is the newest-first status snapshot used for the
    consecutive-failure count, including the check that triggered it.
    """

    old_status: str
    new_status: str
    consecutive_failures: int = 0
    response_time: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    status_change_at: str
    history_id: Optional[int] = None
    history_statuses: List[str] = Field(default_factory=list)


class AlertMetadata(WireModel):
    monitor_name: str
    monitor_url: str
    check_duration: int = 0


class AlertProcessingPayload(WireModel):
    monitor_id: str
    user_id: str
    alert_context: AlertContext
    metadata: AlertMetadata


class AlertProcessingMessage(MessageEnvelope):
    message_type: Literal["ALERT_PROCESSING"] = MessageType.ALERT_PROCESSING.value
    payload: AlertProcessingPayload


# ============================================================================
# BULK_SCHEDULE
# ============================================================================

class BulkFilters(WireModel):
    user_id: Optional[str] = None
    priority: Optional[Priority] = None
    interval_minutes: Optional[List[int]] = None


class BulkSchedulePayload(WireModel):
    target_time: str
    batch_size: int = 50
    filters: BulkFilters = Field(default_factory=BulkFilters)
    operation: Literal["schedule_checks", "reschedule_failed", "priority_check"] = "schedule_checks"


class BulkScheduleMessage(MessageEnvelope):
    message_type: Literal["BULK_SCHEDULE"] = MessageType.BULK_SCHEDULE.value
    payload: BulkSchedulePayload


# ============================================================================
# DLQ_REVIEW
# ============================================================================

class RetryAttempt(WireModel):
    attempt_number: int
    failed_at: str
    error_message: str


class DLQPayload(WireModel):
    original_message: Any = None
    failure_reason: str
    failure_timestamp: str
    original_queue: str
    retry_history: List[RetryAttempt] = Field(default_factory=list)


class DLQMessage(MessageEnvelope):
    message_type: Literal["DLQ_REVIEW"] = MessageType.DLQ_REVIEW.value
    payload: DLQPayload


# ============================================================================
# UNION AND CODEC
# ============================================================================

QueueMessage = Annotated[
    Union[MonitorCheckMessage, AlertProcessingMessage, BulkScheduleMessage, DLQMessage],
    Field(discriminator="message_type")
]

_adapter: TypeAdapter = TypeAdapter(QueueMessage)


def serialize_message(message: MessageEnvelope) -> str:
    """Encode a message as camelCase JSON."""
    return message.model_dump_json(by_alias=True, exclude_none=True)


def parse_message(body: str) -> Union[MonitorCheckMessage, AlertProcessingMessage, BulkScheduleMessage, DLQMessage]:
    """
    Decode a message body.

    Raises:
        MessageParseError: The body is not JSON or not a known message kind
    """
    try:
        return _adapter.validate_json(body)
    except ValidationError as e:
        raise MessageParseError(
            f"Invalid message body: {e.error_count()} validation error(s)",
            body=body,
            cause=e
        ) from e


@dataclass
class ReceivedMessage:
    """
    A delivered message plus its delivery metadata.

    Attributes:
        message: Parsed message
        receipt_handle: Token for delete and visibility calls
        queue_name: Queue it was received from
        receive_count: Deliveries so far, including this one
        attributes: String message attributes
        sent_at: When the queue accepted the message
    """

    message: Union[MonitorCheckMessage, AlertProcessingMessage, BulkScheduleMessage, DLQMessage]
    receipt_handle: str
    queue_name: str
    receive_count: int = 1
    attributes: Dict[str, str] = field(default_factory=dict)
    sent_at: Optional[datetime] = None

    @property
    def message_id(self) -> str:
        return self.message.message_id
