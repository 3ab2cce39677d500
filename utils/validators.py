"""
============================================================================
UPTIME PULSE - VALIDATORS UTILITY
============================================================================
Validation of notification channel configurations and monitor URLs.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import ipaddress
import re
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import validators as external_validators

from config.constants import ChannelType
from exceptions import InvalidChannelConfigError
from utils.logger import get_logger


logger = get_logger("Validators")

# E.164: leading +, no leading zero, at most 15 digits
PHONE_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


# ============================================================================
# VALIDATION RESULT CLASS
# ============================================================================

class ValidationResult:
    """
    Class to hold validation results with detailed information.
    """

    def __init__(self, is_valid: bool, message: str = "", errors: Optional[List[str]] = None):
        self.is_valid = is_valid
        self.message = message
        self.errors = errors or []

    def __bool__(self):
        """Allow using result as boolean."""
        return self.is_valid

    def __iter__(self):
        """Unpack as ``(is_valid, errors)``."""
        yield self.is_valid
        yield self.errors

    def __str__(self):
        if self.is_valid:
            return f"Valid: {self.message}"
        errors_str = ", ".join(self.errors) if self.errors else "Unknown error"
        return f"Invalid: {self.message} - {errors_str}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_valid": self.is_valid,
            "message": self.message,
            "errors": self.errors
        }


# ============================================================================
# FIELD VALIDATORS
# ============================================================================

class URLValidator:
    """
    HTTP(S) URL validation.
    """

    @staticmethod
    def is_valid_http_url(url: Optional[str]) -> bool:
        """
        Check that a URL is well formed and uses http or https.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        if not url or not isinstance(url, str):
            return False

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False

        if parsed.hostname == "localhost" or URLValidator._is_ip(parsed.hostname):
            return True

        # validators returns a falsy ValidationError instead of raising
        return external_validators.url(url) is True

    @staticmethod
    def _is_ip(host: str) -> bool:
        try:
            ipaddress.ip_address(host)
            return True
        except ValueError:
            return False


class ContactValidator:
    """
    Email address and phone number validation.
    """

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email or not isinstance(email, str):
            return False
        return external_validators.email(email) is True

    @staticmethod
    def is_valid_phone(phone: Optional[str]) -> bool:
        """Check an E.164 phone number such as ``+14155550100``."""
        if not phone or not isinstance(phone, str):
            return False
        return bool(PHONE_PATTERN.match(phone))


# ============================================================================
# CHANNEL CONFIG VALIDATION
# ============================================================================

def validate_channel_config(channel_type: str, config: Optional[Mapping[str, Any]]) -> ValidationResult:
    """
    Validate a notification channel configuration.

    Email channels need ``email``, SMS channels need ``phone`` in E.164
    format and webhook channels need an http(s) ``webhook_url``.

    Args:
        channel_type: One of the ChannelType values
        config: Channel configuration mapping

    Returns:
        ValidationResult; unpacks as ``(is_valid, errors)``
    """
    channel_type = getattr(channel_type, "value", channel_type)
    config = config or {}
    errors: List[str] = []

    if channel_type == ChannelType.EMAIL:
        if not config.get("email"):
            errors.append("Email address is required")
        elif not ContactValidator.is_valid_email(config["email"]):
            errors.append("Invalid email address format")

    elif channel_type == ChannelType.SMS:
        if not config.get("phone"):
            errors.append("Phone number is required")
        elif not ContactValidator.is_valid_phone(config["phone"]):
            errors.append("Invalid phone number format (use E.164 format: +1234567890)")

    elif channel_type == ChannelType.WEBHOOK:
        if not config.get("webhook_url"):
            errors.append("Webhook URL is required")
        elif not URLValidator.is_valid_http_url(config["webhook_url"]):
            errors.append("Webhook URL must use HTTP or HTTPS protocol")

    else:
        errors.append(f"Unsupported channel type: {channel_type}")

    if errors:
        logger.debug(f"Channel config rejected ({channel_type}): {errors}")
        return ValidationResult(False, f"{channel_type} channel config", errors)

    return ValidationResult(True, f"{channel_type} channel config")


def require_valid_channel_config(channel_type: str, config: Optional[Mapping[str, Any]]) -> None:
    """
    Raise InvalidChannelConfigError when the configuration is invalid.
    """
    channel_type = getattr(channel_type, "value", channel_type)
    result = validate_channel_config(channel_type, config)
    if not result:
        raise InvalidChannelConfigError(
            f"Invalid {channel_type} channel configuration",
            channel_type=channel_type,
            errors=result.errors
        )
