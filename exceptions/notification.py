"""
Notification Exception Classes for Uptime Pulse

Provider failures never escape the alert dispatcher; these exceptions
are converted into failed alert log rows.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import PulseException


class NotificationException(PulseException):
    """Base class for notification provider errors."""

    default_error_code = 4000

    def __init__(
        self,
        message: str,
        channel_type: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if channel_type:
            self.details["channel_type"] = channel_type


class UnsupportedChannelError(NotificationException):
    """Raised when no provider is registered for a channel type."""

    default_error_code = 4002
    default_recoverable = False


class ProviderNotConfiguredError(NotificationException):
    """A provider is missing its credentials; every send through it fails."""

    default_error_code = 4001
    default_recoverable = False
