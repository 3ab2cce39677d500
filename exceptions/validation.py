"""
Validation Exception Classes for Uptime Pulse

Rejected input such as a malformed notification channel configuration.
Never recoverable: the same input fails the same way on redelivery.
"""

from __future__ import annotations

from typing import Any, List, Optional

from exceptions.base import PulseException


class ValidationException(PulseException):
    """Base class for validation errors."""

    default_error_code = 5000
    default_recoverable = False


class InvalidChannelConfigError(ValidationException):
    """
    A notification channel config failed validation.

    Attributes:
        errors: Every problem found, in check order
    """

    default_error_code = 5001

    def __init__(
        self,
        message: str = "Invalid notification channel configuration",
        channel_type: Optional[str] = None,
        errors: Optional[List[str]] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])

        if channel_type:
            self.details["channel_type"] = channel_type
        if self.errors:
            self.details["errors"] = self.errors
