"""
Queue Exception Classes for Uptime Pulse

Errors raised by the durable queue clients. Send and receive failures
are transient; a body that cannot be parsed is poison and is left to
the dead-letter queue.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import PulseException


class QueueException(PulseException):
    """Base class for queue errors."""

    default_error_code = 3000

    def __init__(
        self,
        message: str,
        queue_name: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        self.queue_name = queue_name

        if queue_name:
            self.details["queue"] = queue_name


class QueueNotConfiguredError(QueueException):
    """Raised when a queue name has no definition or no URL."""

    default_error_code = 3001
    default_recoverable = False


class MessageSendError(QueueException):
    """Raised when a message could not be enqueued."""

    default_error_code = 3002

    def __init__(
        self,
        message: str = "Failed to send message",
        message_id: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if message_id:
            self.details["message_id"] = message_id


class MessageReceiveError(QueueException):
    """Raised when a receive call against the queue service fails."""

    default_error_code = 3003


class MessageParseError(QueueException):
    """
    Message Parse Error

    Raised when a message body is not a valid queue message.
    """

    default_error_code = 3004
    default_recoverable = False

    def __init__(
        self,
        message: str = "Invalid message body",
        body: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if body is not None:
            self.details["body"] = body[:200]
