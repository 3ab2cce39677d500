"""
============================================================================
UPTIME PULSE - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for monitors, check history, alert rules,
notification channels and the alert audit log.

All timestamps are naive UTC.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, JSON,
    ForeignKey, Index
)
from sqlalchemy.orm import declarative_base, relationship

from config.constants import AlertLogStatus, Defaults, MonitorStatus


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def new_uuid() -> str:
    """Primary key factory for string UUID columns."""
    return str(uuid.uuid4())


def _iso(value: datetime) -> Any:
    return value.isoformat() if value else None


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )


# ============================================================================
# MONITOR MODEL
# ============================================================================

class Monitor(Base, TimestampMixin):
    """
    A user-registered HTTP endpoint under periodic observation.

    ``claimed_until`` is the scheduling lease: while it lies in the future
    the monitor is not selected by another scheduling pass.
    """
    __tablename__ = "monitors"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(64), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    interval_minutes = Column(Integer, nullable=False, default=Defaults.INTERVAL_MINUTES)
    timeout_seconds = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    status = Column(String(16), nullable=False, default=MonitorStatus.PENDING.value)
    response_time = Column(Integer, nullable=True)  # milliseconds
    last_checked_at = Column(DateTime, nullable=True)
    next_check_at = Column(DateTime, nullable=True)
    claimed_until = Column(DateTime, nullable=True)

    history = relationship(
        "MonitoringHistory",
        back_populates="monitor",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload"
    )

    __table_args__ = (
        Index("idx_monitor_due", "is_active", "next_check_at"),
    )

    def __repr__(self) -> str:
        return f"<Monitor(id={self.id}, url={self.url}, status={self.status})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert monitor to dictionary"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "url": self.url,
            "interval_minutes": self.interval_minutes,
            "timeout_seconds": self.timeout_seconds,
            "is_active": self.is_active,
            "status": self.status,
            "response_time": self.response_time,
            "last_checked_at": _iso(self.last_checked_at),
            "next_check_at": _iso(self.next_check_at),
        }


# ============================================================================
# MONITORING HISTORY MODEL
# ============================================================================

class MonitoringHistory(Base):
    """
    One executed check. Append-only.
    """
    __tablename__ = "monitoring_history"

    # Integer key keeps insertion order as a tie-breaker for equal timestamps
    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(
        String(36),
        ForeignKey("monitors.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id = Column(String(64), nullable=False)

    status = Column(String(16), nullable=False)
    response_time = Column(Integer, nullable=True)
    status_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    checked_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    monitor = relationship("Monitor", back_populates="history")

    __table_args__ = (
        Index("idx_history_monitor_time", "monitor_id", "checked_at"),
    )

    def __repr__(self) -> str:
        return f"<MonitoringHistory(monitor_id={self.monitor_id}, status={self.status})>"


# ============================================================================
# NOTIFICATION CHANNEL MODEL
# ============================================================================

class NotificationChannel(Base, TimestampMixin):
    """
    Typed notification endpoint (email, sms, webhook).
    Eligible for alerts only when active and verified.
    """
    __tablename__ = "notification_channels"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(16), nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    @property
    def is_eligible(self) -> bool:
        return bool(self.is_active and self.is_verified)

    def __repr__(self) -> str:
        return f"<NotificationChannel(id={self.id}, type={self.type})>"


# ============================================================================
# ALERT RULE MODEL
# ============================================================================

class MonitorAlertRule(Base, TimestampMixin):
    """
    Binds one monitor to one notification channel.
    """
    __tablename__ = "monitor_alert_rules"

    id = Column(String(36), primary_key=True, default=new_uuid)
    monitor_id = Column(
        String(36),
        ForeignKey("monitors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    notification_channel_id = Column(
        String(36),
        ForeignKey("notification_channels.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id = Column(String(64), nullable=False)

    alert_on_down = Column(Boolean, nullable=False, default=True)
    alert_on_up = Column(Boolean, nullable=False, default=True)
    alert_on_timeout = Column(Boolean, nullable=False, default=True)
    consecutive_failures_threshold = Column(
        Integer,
        nullable=False,
        default=Defaults.CONSECUTIVE_FAILURES_THRESHOLD
    )
    cooldown_minutes = Column(Integer, nullable=False, default=Defaults.COOLDOWN_MINUTES)
    is_active = Column(Boolean, nullable=False, default=True)

    channel = relationship("NotificationChannel", lazy="joined")

    def __repr__(self) -> str:
        return f"<MonitorAlertRule(id={self.id}, monitor_id={self.monitor_id})>"


# ============================================================================
# ALERT LOG MODEL
# ============================================================================

class AlertLog(Base):
    """
    Audit record of one dispatch attempt (pending -> sent | failed).

    ``idempotency_key`` identifies the (triggering check, rule) pair so a
    redelivered alert message reuses the existing row instead of sending
    the same notification twice.
    """
    __tablename__ = "alert_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String(36), nullable=False, index=True)
    monitor_alert_rule_id = Column(String(36), nullable=False)
    notification_channel_id = Column(String(36), nullable=False)
    user_id = Column(String(64), nullable=False)

    alert_type = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=AlertLogStatus.PENDING.value)
    trigger_status = Column(String(16), nullable=False)
    previous_status = Column(String(16), nullable=True)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    message = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    idempotency_key = Column(String(255), nullable=True, unique=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    sent_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_alert_log_rule_status", "monitor_alert_rule_id", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AlertLog(id={self.id}, rule={self.monitor_alert_rule_id}, "
            f"trigger={self.trigger_status}, status={self.status})>"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert alert log to dictionary"""
        return {
            "id": self.id,
            "monitor_id": self.monitor_id,
            "rule_id": self.monitor_alert_rule_id,
            "channel_id": self.notification_channel_id,
            "alert_type": self.alert_type,
            "status": self.status,
            "trigger_status": self.trigger_status,
            "previous_status": self.previous_status,
            "consecutive_failures": self.consecutive_failures,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
            "sent_at": _iso(self.sent_at),
        }
