"""
============================================================================
UPTIME PULSE - DATASTORE
============================================================================
Read/write operations the scheduling and alerting pipeline consumes.
Every write is scoped to a single monitor, history, rule or log row.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, delete, desc, func, or_, select, update

from config.constants import AlertLogStatus, MonitorStatus
from database.manager import DatabaseManager
from database.models import (
    AlertLog,
    Monitor,
    MonitorAlertRule,
    MonitoringHistory,
    NotificationChannel
)
from exceptions import RecordNotFoundError
from utils.helpers import utcnow
from utils.logger import get_logger


class Datastore:
    """
    Repository for the pipeline tables.

    Errors propagate as DatabaseException subclasses; the queue's
    redelivery is the retry mechanism.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize datastore.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger("Datastore")

    # ========================================================================
    # MONITORS
    # ========================================================================

    async def get_monitor(self, monitor_id: str) -> Optional[Monitor]:
        """Fetch one monitor, or None when it does not exist."""
        async with self.db.session() as session:
            return await session.get(Monitor, monitor_id)

    async def monitors_due_for_check(
        self,
        limit: int,
        now: Optional[datetime] = None
    ) -> List[Monitor]:
        """
        Active monitors whose next check time has passed and which are
        not leased by another scheduling pass, oldest-due first.

        Args:
            limit: Maximum number of monitors
            now: Reference time (naive UTC)

        Returns:
            List of monitors
        """
        now = now or utcnow()
        query = (
            select(Monitor)
            .where(
                and_(
                    Monitor.is_active.is_(True),
                    or_(Monitor.next_check_at <= now, Monitor.next_check_at.is_(None)),
                    or_(Monitor.claimed_until.is_(None), Monitor.claimed_until <= now)
                )
            )
            .order_by(Monitor.next_check_at.asc().nulls_first(), Monitor.created_at.asc())
            .limit(limit)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def claim_monitor(
        self,
        monitor_id: str,
        until: datetime,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Atomically take the scheduling lease on a monitor.

        Returns:
            True when this caller now holds the lease
        """
        now = now or utcnow()
        statement = (
            update(Monitor)
            .where(
                and_(
                    Monitor.id == monitor_id,
                    Monitor.is_active.is_(True),
                    or_(Monitor.claimed_until.is_(None), Monitor.claimed_until <= now)
                )
            )
            .values(claimed_until=until)
            .execution_options(synchronize_session=False)
        )
        async with self.db.session() as session:
            result = await session.execute(statement)
            return result.rowcount == 1

    async def release_monitor(self, monitor_id: str) -> None:
        """Drop the scheduling lease."""
        await self.update_monitor(monitor_id, claimed_until=None)

    async def update_monitor(self, monitor_id: str, **fields: Any) -> None:
        """
        Update columns of one monitor.

        Raises:
            RecordNotFoundError: The monitor does not exist
        """
        if not fields:
            return
        fields.setdefault("updated_at", utcnow())
        statement = (
            update(Monitor)
            .where(Monitor.id == monitor_id)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        async with self.db.session() as session:
            result = await session.execute(statement)
            if result.rowcount == 0:
                raise RecordNotFoundError(entity_type="Monitor", entity_id=monitor_id)

    async def count_active_monitors(self) -> int:
        async with self.db.session() as session:
            return await session.scalar(
                select(func.count(Monitor.id)).where(Monitor.is_active.is_(True))
            ) or 0

    async def count_due_monitors(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        async with self.db.session() as session:
            return await session.scalar(
                select(func.count(Monitor.id)).where(
                    and_(
                        Monitor.is_active.is_(True),
                        or_(Monitor.next_check_at <= now, Monitor.next_check_at.is_(None))
                    )
                )
            ) or 0

    # ========================================================================
    # HISTORY
    # ========================================================================

    async def insert_history(self, record: Dict[str, Any]) -> MonitoringHistory:
        """
        Append one check to the history.

        Args:
            record: Column values (monitor_id, user_id, status, ...)

        Returns:
            The stored row with its id
        """
        row = MonitoringHistory(**record)
        async with self.db.session() as session:
            session.add(row)
            await session.flush()
        return row

    async def recent_history(self, monitor_id: str, limit: int) -> List[MonitoringHistory]:
        """Latest history rows of a monitor, newest first."""
        query = (
            select(MonitoringHistory)
            .where(MonitoringHistory.monitor_id == monitor_id)
            .order_by(desc(MonitoringHistory.checked_at), desc(MonitoringHistory.id))
            .limit(limit)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def last_healthy_check(
        self,
        monitor_id: str,
        at_or_before: datetime
    ) -> Optional[MonitoringHistory]:
        """
        The newest non-failing check of a monitor up to ``at_or_before``.
        A failure run began right after it.
        """
        query = (
            select(MonitoringHistory)
            .where(
                and_(
                    MonitoringHistory.monitor_id == monitor_id,
                    MonitoringHistory.status.notin_(_values(MonitorStatus.failures())),
                    MonitoringHistory.checked_at <= at_or_before
                )
            )
            .order_by(desc(MonitoringHistory.checked_at), desc(MonitoringHistory.id))
            .limit(1)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return result.scalars().first()

    async def delete_history_before(self, cutoff: datetime) -> int:
        """Delete history rows older than ``cutoff``; returns the count."""
        async with self.db.session() as session:
            result = await session.execute(
                delete(MonitoringHistory).where(MonitoringHistory.checked_at < cutoff)
            )
            deleted = result.rowcount or 0
        if deleted:
            self.logger.info(f"Deleted {deleted} history rows older than {cutoff.isoformat()}")
        return deleted

    # ========================================================================
    # ALERT RULES
    # ========================================================================

    async def active_alert_rules_for(self, monitor_id: str) -> List[MonitorAlertRule]:
        """
        Active rules of a monitor whose channel is active and verified.
        The channel is loaded with each rule.
        """
        query = (
            select(MonitorAlertRule)
            .join(
                NotificationChannel,
                NotificationChannel.id == MonitorAlertRule.notification_channel_id
            )
            .where(
                and_(
                    MonitorAlertRule.monitor_id == monitor_id,
                    MonitorAlertRule.is_active.is_(True),
                    NotificationChannel.is_active.is_(True),
                    NotificationChannel.is_verified.is_(True)
                )
            )
            .order_by(MonitorAlertRule.created_at.asc())
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return list(result.unique().scalars().all())

    # ========================================================================
    # ALERT LOGS
    # ========================================================================

    async def insert_alert_log(self, record: Dict[str, Any]) -> AlertLog:
        """Write a new alert log row and return it with its id."""
        row = AlertLog(**record)
        async with self.db.session() as session:
            session.add(row)
            await session.flush()
        return row

    async def update_alert_log(self, log_id: int, **fields: Any) -> None:
        """Update columns of one alert log row."""
        async with self.db.session() as session:
            result = await session.execute(
                update(AlertLog)
                .where(AlertLog.id == log_id)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(entity_type="AlertLog", entity_id=log_id)

    async def alert_log_for_key(self, idempotency_key: str) -> Optional[AlertLog]:
        async with self.db.session() as session:
            result = await session.execute(
                select(AlertLog).where(AlertLog.idempotency_key == idempotency_key)
            )
            return result.scalars().first()

    async def most_recent_sent_alert(
        self,
        rule_id: str,
        statuses: Iterable[str]
    ) -> Optional[AlertLog]:
        """
        The newest sent alert of a rule whose trigger status is in ``statuses``.
        """
        query = (
            select(AlertLog)
            .where(
                and_(
                    AlertLog.monitor_alert_rule_id == rule_id,
                    AlertLog.status == AlertLogStatus.SENT.value,
                    AlertLog.trigger_status.in_(_values(statuses))
                )
            )
            .order_by(desc(AlertLog.sent_at), desc(AlertLog.id))
            .limit(1)
        )
        async with self.db.session() as session:
            result = await session.execute(query)
            return result.scalars().first()

    async def alert_sent_since(
        self,
        rule_id: str,
        after: Optional[datetime],
        statuses: Optional[Iterable[str]] = None
    ) -> bool:
        """
        Whether the rule has an alert that was sent strictly after ``after``
        (at any time when None), optionally restricted to trigger statuses.

        Compared on sent_at; a retried row keeps its original created_at.
        """
        conditions = [
            AlertLog.monitor_alert_rule_id == rule_id,
            AlertLog.status == AlertLogStatus.SENT.value
        ]
        if after is not None:
            conditions.append(AlertLog.sent_at > after)
        if statuses is not None:
            conditions.append(AlertLog.trigger_status.in_(_values(statuses)))

        async with self.db.session() as session:
            count = await session.scalar(
                select(func.count(AlertLog.id)).where(and_(*conditions))
            )
        return bool(count)

    async def alert_logs_for_monitor(self, monitor_id: str) -> List[AlertLog]:
        """All alert logs of a monitor, oldest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(AlertLog)
                .where(AlertLog.monitor_id == monitor_id)
                .order_by(AlertLog.created_at.asc(), AlertLog.id.asc())
            )
            return list(result.scalars().all())


def _value(status: Any) -> str:
    return getattr(status, "value", status)


def _values(statuses: Iterable[Any]) -> Sequence[str]:
    return [_value(status) for status in statuses]
