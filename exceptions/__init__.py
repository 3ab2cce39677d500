"""
Exceptions Package for Uptime Pulse

Exception hierarchy shared by the scheduler, queue clients,
workers and notification providers.
"""

from exceptions.base import (
    PulseException,
    InitializationError
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
    RecordNotFoundError
)

from exceptions.queue import (
    QueueException,
    QueueNotConfiguredError,
    MessageSendError,
    MessageReceiveError,
    MessageParseError
)

from exceptions.notification import (
    NotificationException,
    ProviderNotConfiguredError,
    UnsupportedChannelError
)

from exceptions.validation import (
    ValidationException,
    InvalidChannelConfigError
)

__all__ = [
    # Base exceptions
    "PulseException",
    "InitializationError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "RecordNotFoundError",

    # Queue exceptions
    "QueueException",
    "QueueNotConfiguredError",
    "MessageSendError",
    "MessageReceiveError",
    "MessageParseError",

    # Notification exceptions
    "NotificationException",
    "ProviderNotConfiguredError",
    "UnsupportedChannelError",

    # Validation exceptions
    "ValidationException",
    "InvalidChannelConfigError"
]
