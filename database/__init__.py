"""
Database Package for Uptime Pulse

Provides the async engine/session manager, ORM models and the
Datastore consumed by the scheduler, workers and alert dispatcher.
"""

from database.manager import DatabaseManager

from database.models import (
    Base,
    Monitor,
    MonitoringHistory,
    NotificationChannel,
    MonitorAlertRule,
    AlertLog
)

from database.store import Datastore

__all__ = [
    # Connection
    "DatabaseManager",

    # Models
    "Base",
    "Monitor",
    "MonitoringHistory",
    "NotificationChannel",
    "MonitorAlertRule",
    "AlertLog",

    # Repository
    "Datastore"
]
