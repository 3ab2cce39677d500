"""
============================================================================
UPTIME PULSE - HELPERS UTILITY
============================================================================
Time helpers shared by the pipeline. Every timestamp is naive UTC.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from datetime import datetime, timedelta
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored everywhere."""
    return datetime.utcnow()


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.
    """

    @staticmethod
    def minutes_from(moment: datetime, minutes: int) -> datetime:
        """Return ``moment`` shifted forward by ``minutes``."""
        return moment + timedelta(minutes=minutes)

    @staticmethod
    def format_datetime(dt: datetime, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
        """
        Format datetime to string.

        Args:
            dt: Datetime to format
            fmt: Format string

        Returns:
            Formatted string
        """
        return dt.strftime(fmt)

    @staticmethod
    def parse_iso(value: Optional[str]) -> Optional[datetime]:
        """
        Parse an ISO-8601 timestamp into naive UTC.

        Args:
            value: String to parse (``Z`` suffix and offsets accepted)

        Returns:
            Datetime or None if parsing fails
        """
        if not value:
            return None
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
        return parsed

    @staticmethod
    def to_iso(dt: datetime) -> str:
        """Serialize a naive UTC datetime with a trailing ``Z``."""
        return dt.isoformat(timespec="milliseconds") + "Z"

    @staticmethod
    def seconds_to_human_readable(seconds: float) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        seconds = int(seconds)
        if seconds < 0:
            return "0s"

        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)
