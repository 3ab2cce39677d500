"""
============================================================================
UPTIME PULSE - NOTIFICATION PROVIDER BASE
============================================================================
One provider per channel kind, each exposing ``send(context) -> outcome``.
Providers never raise for delivery problems: a missing credential, an
invalid address or a non-2xx answer comes back as a failed outcome and
ends up in the alert log.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import httpx

from config.constants import ChannelType, MonitorStatus
from exceptions import NotificationException, UnsupportedChannelError
from utils.helpers import utcnow
from utils.logger import get_logger
from utils.validators import validate_channel_config


@dataclass(frozen=True)
class NotificationContext:
    """
    Everything a provider needs to render and deliver one alert.
    """
    monitor_id: str
    monitor_name: str
    monitor_url: str
    channel_type: str
    channel_config: Mapping[str, Any]
    trigger_status: str
    previous_status: Optional[str]
    consecutive_failures: int
    response_time: Optional[int] = None
    error_message: Optional[str] = None
    triggered_at: datetime = field(default_factory=utcnow)

    @property
    def is_recovery(self) -> bool:
        return (
            self.trigger_status == MonitorStatus.UP.value
            and MonitorStatus.is_failure(self.previous_status)
        )

    @property
    def is_outage(self) -> bool:
        return MonitorStatus.is_failure(self.trigger_status)


@dataclass(frozen=True)
class NotificationOutcome:
    """Result of one delivery attempt."""
    success: bool
    error: Optional[str] = None
    provider_message_id: Optional[str] = None

    @classmethod
    def ok(cls, provider_message_id: Optional[str] = None) -> "NotificationOutcome":
        return cls(success=True, provider_message_id=provider_message_id)

    @classmethod
    def fail(cls, error: str) -> "NotificationOutcome":
        return cls(success=False, error=error)


class NotificationProvider(ABC):
    """
    Base class for channel providers.

    Subclasses implement ``_deliver``; ``send`` validates the channel
    configuration first and turns transport errors into failed outcomes.
    """

    channel_type: ChannelType

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client
        self.logger = get_logger(self.__class__.__name__)

    async def send(self, context: NotificationContext) -> NotificationOutcome:
        valid, errors = validate_channel_config(self.channel_type.value, context.channel_config)
        if not valid:
            return NotificationOutcome.fail("; ".join(errors))

        try:
            return await self._deliver(context)
        except httpx.TimeoutException as e:
            self.logger.warning(f"{self.channel_type.value} alert timed out for {context.monitor_id}: {e}")
            return NotificationOutcome.fail(f"Request timed out: {e}")
        except httpx.HTTPError as e:
            self.logger.warning(f"{self.channel_type.value} alert failed for {context.monitor_id}: {e}")
            return NotificationOutcome.fail(str(e) or e.__class__.__name__)
        except NotificationException as e:
            self.logger.warning(f"{self.channel_type.value} alert not sent for {context.monitor_id}: {e.log_format()}")
            return NotificationOutcome.fail(e.message)

    @abstractmethod
    async def _deliver(self, context: NotificationContext) -> NotificationOutcome:
        """Render and deliver the notification."""


class ProviderRegistry:
    """
    Channel type -> provider lookup used by the alert dispatcher.
    """

    def __init__(self, providers: Optional[Mapping[str, NotificationProvider]] = None):
        self._providers: Dict[str, NotificationProvider] = {}
        for channel_type, provider in (providers or {}).items():
            self.register(channel_type, provider)

    def register(self, channel_type: str, provider: NotificationProvider) -> None:
        self._providers[getattr(channel_type, "value", channel_type)] = provider

    def get(self, channel_type: str) -> NotificationProvider:
        """
        Raises:
            UnsupportedChannelError: No provider for this channel type
        """
        try:
            return self._providers[channel_type]
        except KeyError:
            raise UnsupportedChannelError(
                f"Unsupported alert type: {channel_type}",
                channel_type=channel_type
            ) from None

    async def send(self, context: NotificationContext) -> NotificationOutcome:
        """Dispatch to the provider of ``context.channel_type``."""
        try:
            provider = self.get(context.channel_type)
        except UnsupportedChannelError as e:
            return NotificationOutcome.fail(e.message)
        return await provider.send(context)

    def __contains__(self, channel_type: str) -> bool:
        return channel_type in self._providers
