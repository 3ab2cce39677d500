"""
Configuration Package for Uptime Pulse

This package contains:
- Settings management with environment variable support
- Enumerations, queue definitions and processing profiles
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    QueueSettings,
    WorkerSettings,
    SchedulerSettings,
    MonitoringSettings,
    AlertSettings,
    NotificationSettings,
    LoggingSettings,
    get_settings
)

from config.constants import (
    MonitorStatus,
    Priority,
    MessageType,
    ChannelType,
    AlertLogStatus,
    ProcessingStrategy,
    QueueNames,
    QueueDefinition,
    ProcessingProfile,
    QUEUE_DEFINITIONS,
    PROCESSING_PROFILES,
    Defaults,
    Limits
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "QueueSettings",
    "WorkerSettings",
    "SchedulerSettings",
    "MonitoringSettings",
    "AlertSettings",
    "NotificationSettings",
    "LoggingSettings",
    "get_settings",

    # Constants
    "MonitorStatus",
    "Priority",
    "MessageType",
    "ChannelType",
    "AlertLogStatus",
    "ProcessingStrategy",
    "QueueNames",
    "QueueDefinition",
    "ProcessingProfile",
    "QUEUE_DEFINITIONS",
    "PROCESSING_PROFILES",
    "Defaults",
    "Limits"
]
