"""
AWS SQS Queue Client for Uptime Pulse

boto3 is synchronous; every call runs in a worker thread so the event
loop keeps serving other consumers during a long poll.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config.constants import Limits, QueueDefinition
from config.settings import QueueSettings
from exceptions import (
    MessageParseError,
    MessageReceiveError,
    MessageSendError,
    QueueException,
    QueueNotConfiguredError
)
from queues.base import QueueAttributes, QueueClient, message_group_id
from queues.messages import MessageEnvelope, ReceivedMessage, parse_message, serialize_message


def _format_attributes(attributes: Optional[Mapping[str, str]]) -> Dict[str, Dict[str, str]]:
    return {
        key: {"DataType": "String", "StringValue": str(value)}
        for key, value in (attributes or {}).items()
    }


class SQSQueueClient(QueueClient):
    """
    Queue client backed by AWS SQS.

    Args:
        settings: Queue settings (region, credentials, queue URLs)
        definitions: Queue definitions, defaults to the standard set
        client: Pre-built boto3 SQS client, built from settings if omitted
    """

    def __init__(
        self,
        settings: QueueSettings,
        definitions: Optional[Mapping[str, QueueDefinition]] = None,
        client: Any = None
    ):
        super().__init__(definitions)
        self.settings = settings
        self.queue_urls: Dict[str, str] = dict(settings.urls)
        self.client = client or self._build_client(settings)

    @staticmethod
    def _build_client(settings: QueueSettings):
        kwargs: Dict[str, Any] = {"region_name": settings.region}
        if settings.endpoint_url:
            kwargs["endpoint_url"] = settings.endpoint_url
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            kwargs["aws_access_key_id"] = settings.aws_access_key_id
            kwargs["aws_secret_access_key"] = settings.aws_secret_access_key.get_secret_value()
        return boto3.client("sqs", **kwargs)

    def _queue_url(self, queue_name: str) -> str:
        url = self.queue_urls.get(queue_name)
        if not url:
            raise QueueNotConfiguredError(
                f"Queue URL not found for: {queue_name}",
                queue_name=queue_name
            )
        return url

    async def _call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        method = getattr(self.client, operation)
        return await asyncio.to_thread(method, **kwargs)

    async def verify_queues(self) -> None:
        """Fail fast when a configured queue URL is unreachable."""
        for queue_name in self.definitions:
            if queue_name in self.queue_urls:
                await self.attributes(queue_name)
        self.logger.info(f"✓ SQS queues verified ({len(self.queue_urls)} configured)")

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def _send_params(
        self,
        queue_name: str,
        message: MessageEnvelope,
        attributes: Optional[Mapping[str, str]]
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "MessageBody": serialize_message(message),
            "MessageAttributes": _format_attributes(attributes),
        }
        if self.definition(queue_name).fifo:
            params["MessageGroupId"] = message_group_id(message)
            params["MessageDeduplicationId"] = message.message_id
        return params

    async def send(
        self,
        queue_name: str,
        message: MessageEnvelope,
        attributes: Optional[Mapping[str, str]] = None
    ) -> str:
        queue_url = self._queue_url(queue_name)
        try:
            result = await self._call(
                "send_message",
                QueueUrl=queue_url,
                **self._send_params(queue_name, message, attributes)
            )
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"[SQS] Failed to send message to {queue_name}: {e}")
            raise MessageSendError(
                f"Send message failed: {e}",
                queue_name=queue_name,
                message_id=message.message_id,
                cause=e
            ) from e

        queue_message_id = result.get("MessageId")
        if not queue_message_id:
            raise MessageSendError(
                "No MessageId returned from SQS",
                queue_name=queue_name,
                message_id=message.message_id
            )

        self.logger.debug(f"[SQS] Sent {message.message_id} to {queue_name} as {queue_message_id}")
        return queue_message_id

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

        queue_url = self._queue_url(queue_name)
        batch = [
            {"Id": str(index), **self._send_params(queue_name, message, attributes)}
            for index, (message, attributes) in enumerate(entries)
        ]

        try:
            result = await self._call("send_message_batch", QueueUrl=queue_url, Entries=batch)
        except (ClientError, BotoCoreError) as e:
            raise MessageSendError(f"Batch send failed: {e}", queue_name=queue_name, cause=e) from e

        failed = result.get("Failed") or []
        if failed:
            reasons = ", ".join(f"{f.get('Id')}: {f.get('Message')}" for f in failed)
            raise MessageSendError(
                f"{len(failed)} message(s) failed in batch: {reasons}",
                queue_name=queue_name
            )

        successful = sorted(result.get("Successful") or [], key=lambda item: int(item["Id"]))
        return [item["MessageId"] for item in successful]

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    async def receive_batch(
        self,
        queue_name: str,
        max_messages: int = 1,
        wait_seconds: int = 0
    ) -> List[ReceivedMessage]:
        queue_url = self._queue_url(queue_name)
        try:
            result = await self._call(
                "receive_message",
                QueueUrl=queue_url,
                MaxNumberOfMessages=max(1, min(max_messages, Limits.MAX_BATCH_MESSAGES)),
                WaitTimeSeconds=max(0, min(wait_seconds, Limits.MAX_WAIT_SECONDS)),
                MessageAttributeNames=["All"],
                AttributeNames=["All"]
            )
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"[SQS] Failed to receive messages from {queue_name}: {e}")
            raise MessageReceiveError(
                f"Receive messages failed: {e}",
                queue_name=queue_name,
                cause=e
            ) from e

        received: List[ReceivedMessage] = []
        for raw in result.get("Messages") or []:
            try:
                message = parse_message(raw.get("Body", ""))
            except MessageParseError as e:
                self.logger.warning(
                    f"[SQS] Skipping unparseable message {raw.get('MessageId')} "
                    f"on {queue_name}: {e.message}"
                )
                continue

            system = raw.get("Attributes") or {}
            sent_timestamp = system.get("SentTimestamp")
            received.append(
                ReceivedMessage(
                    message=message,
                    receipt_handle=raw["ReceiptHandle"],
                    queue_name=queue_name,
                    receive_count=int(system.get("ApproximateReceiveCount", "1")),
                    attributes={
                        key: value.get("StringValue", "")
                        for key, value in (raw.get("MessageAttributes") or {}).items()
                    },
                    sent_at=(
                        datetime.fromtimestamp(int(sent_timestamp) / 1000, timezone.utc).replace(tzinfo=None)
                        if sent_timestamp else None
                    )
                )
            )

        if received:
            self.logger.debug(f"[SQS] Received {len(received)} message(s) from {queue_name}")
        return received

    # ------------------------------------------------------------------
    # Acknowledge / visibility
    # ------------------------------------------------------------------

    async def delete(self, queue_name: str, receipt_handle: str) -> None:
        try:
            await self._call(
                "delete_message",
                QueueUrl=self._queue_url(queue_name),
                ReceiptHandle=receipt_handle
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueException(f"Delete message failed: {e}", queue_name=queue_name, cause=e) from e

    async def extend_visibility(
        self,
        queue_name: str,
        receipt_handle: str,
        visibility_timeout: int
    ) -> None:
        try:
            await self._call(
                "change_message_visibility",
                QueueUrl=self._queue_url(queue_name),
                ReceiptHandle=receipt_handle,
                VisibilityTimeout=min(visibility_timeout, Limits.MAX_VISIBILITY_TIMEOUT)
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueException(
                f"Change visibility failed: {e}",
                queue_name=queue_name,
                cause=e
            ) from e

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def attributes(self, queue_name: str) -> QueueAttributes:
        try:
            result = await self._call(
                "get_queue_attributes",
                QueueUrl=self._queue_url(queue_name),
                AttributeNames=[
                    "ApproximateNumberOfMessages",
                    "ApproximateNumberOfMessagesNotVisible",
                    "ApproximateNumberOfMessagesDelayed"
                ]
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueException(
                f"Get queue attributes failed: {e}",
                queue_name=queue_name,
                cause=e
            ) from e

        attrs = result.get("Attributes") or {}
        return QueueAttributes(
            depth=int(attrs.get("ApproximateNumberOfMessages", "0")),
            in_flight=int(attrs.get("ApproximateNumberOfMessagesNotVisible", "0")),
            delayed=int(attrs.get("ApproximateNumberOfMessagesDelayed", "0")),
            # SQS exposes the oldest message age only through CloudWatch
            oldest_age_seconds=0
        )

    def monitored_queues(self) -> List[str]:
        """Only queues with a configured URL are reported."""
        return [name for name in self.definitions if name in self.queue_urls]

    async def close(self) -> None:
        await asyncio.to_thread(self.client.close)
