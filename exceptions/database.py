"""
Database Exception Classes for Uptime Pulse

Raised by the DatabaseManager session scope and the Datastore.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from exceptions.base import PulseException


class DatabaseException(PulseException):
    """
    Base Database Exception

    Database failures are transient infrastructure errors: the message
    that hit one stays on its queue and is redelivered.
    """

    default_error_code = 2000
    default_recoverable = True


class DatabaseConnectionError(DatabaseException):
    """The engine could not reach the database."""

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Unable to connect to database",
        url: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if url:
            self.details["url"] = re.sub(r"//[^@/]*@", "//***@", url)


class DatabaseQueryError(DatabaseException):
    """A statement failed inside a session; the transaction was rolled back."""

    default_error_code = 2002

    def __init__(self, message: str = "Database query failed", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class RecordNotFoundError(DatabaseException):
    """
    A row addressed by id does not exist. Not recoverable: redelivering
    the message cannot make the row appear.
    """

    default_error_code = 2003
    default_recoverable = False

    def __init__(
        self,
        message: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message or f"{entity_type or 'Record'} not found", **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type
        if entity_id is not None:
            self.details["entity_id"] = str(entity_id)
