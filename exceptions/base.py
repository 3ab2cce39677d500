"""
Base Exception Classes for Uptime Pulse

Root of the exception hierarchy. Every error carries a numeric code
and a details dict so log lines stay greppable across components.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from utils.helpers import TimeHelper, utcnow


class PulseException(Exception):
    """
    Base Exception Class

    Attributes:
        message: Human-readable error message
        error_code: Numeric code, grouped per component (2xxx database,
            3xxx queue, 4xxx notification, 5xxx validation)
        details: Structured context for logs
        cause: Underlying exception, if any
        recoverable: Whether queue redelivery can help
    """

    default_error_code: int = 1000
    default_recoverable: bool = True

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        recoverable: Optional[bool] = None
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.occurred_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for JSON log sinks and health payloads."""
        return {
            "type": self.__class__.__name__,
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "cause": repr(self.cause) if self.cause else None,
            "occurred_at": TimeHelper.to_iso(self.occurred_at),
        }

    def log_format(self) -> str:
        """One-line form: ``Name[code]: message | key=value ...``"""
        line = f"{self.__class__.__name__}[{self.error_code}]: {self.message}"
        if self.details:
            line += " | " + " ".join(f"{key}={value}" for key, value in self.details.items())
        if self.cause:
            line += f" | cause={self.cause!r}"
        return line

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, error_code={self.error_code})"


class InitializationError(PulseException):
    """Raised when a component (database, queue client, worker pool) fails to start."""

    default_error_code = 1200
    default_recoverable = False

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if component:
            self.details["component"] = component
