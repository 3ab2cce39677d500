"""
============================================================================
UPTIME PULSE - ALERT EVALUATOR & DISPATCHER
============================================================================
Turns one status transition of a monitor into zero or more notifications,
one per matching alert rule, and records every attempt in alert_logs.

Design
------
The check worker never waits for this module. It hands the transition off
(ALERT_PROCESSING message or background task) together with a snapshot of
the newest-first history statuses that includes the check just recorded.
``evaluate_and_dispatch()`` then walks every active rule whose channel is
active and verified. Rules are independent: an exception or provider
failure in one rule is counted and logged, and the next rule still runs.
The method itself never raises.

Triggers
--------
• down     current check is down, alert_on_down, failures ≥ threshold,
           and the failure run started from up
• timeout  current check is timeout, alert_on_timeout, failures ≥ threshold,
           and the failure run started from up
• up       previous status down/timeout, current up, alert_on_up, and a
           recovery is owed: the rule's most recent *sent* down/timeout
           alert exists and no up alert was sent after it

"failures" is the run of contiguous down/timeout statuses at the head of
the history, at least 1 when the current check failed. The status the run
started from is the newest non-failing entry behind it. When the run fills
the whole snapshot, a single failed check started from the previous status
and a longer run from the monitor's last healthy history row. A monitor
whose first checks fail (pending → down) never sends an outage alert.

An outage alert fires once per run. While the run continues the rule only
fires again when it has a positive cooldown and that cooldown has elapsed.

Cooldown Logic
--------------
A rule whose cooldown_minutes is positive does not fire while it has an
alert sent within that window, whatever the trigger kind. A value of 0
disables the cooldown. Failed attempts do not start a cooldown.

Idempotency
-----------
Every attempt is keyed ``check-<history id>:rule-<rule id>``. A redelivered
hand-off finds the existing log: a sent one makes the rule skipped, a
pending or failed one is reused and retried instead of duplicated.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Sequence

from config.constants import AlertLogStatus, MonitorStatus
from database.models import Monitor, MonitorAlertRule
from database.store import Datastore
from monitoring.checker import CheckResult
from notifications.base import NotificationContext, ProviderRegistry
from notifications.templates import email_subject
from utils.helpers import utcnow
from utils.logger import get_logger


logger = get_logger("AlertEvaluator")


FAILURE_STATUSES = (MonitorStatus.DOWN.value, MonitorStatus.TIMEOUT.value)

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"
NOT_TRIGGERED = "not_triggered"


# ============================================================================
# HELPERS
# ============================================================================

def count_consecutive_failures(statuses: Sequence[Any], current: Optional[str] = None) -> int:
    """
    Length of the failure run at the head of a newest-first history.

    Parameters
    ----------
    statuses : Sequence
        Status strings, or rows with a ``status`` attribute, newest first.
    current : str, optional
        Status of the check being evaluated. When it is a failure the
        count is at least 1 even if the history does not contain it yet.
    """
    count = 0
    for entry in statuses:
        status = getattr(entry, "status", entry)
        if MonitorStatus.is_failure(getattr(status, "value", status)):
            count += 1
        else:
            break

    if MonitorStatus.is_failure(current):
        count = max(count, 1)
    return count


def status_before_failures(statuses: Sequence[Any]) -> Optional[str]:
    """
    First non-failing status behind the failure run of a newest-first
    history, or None when every entry is a failure.
    """
    for entry in statuses:
        status = getattr(entry, "status", entry)
        status = getattr(status, "value", status)
        if not MonitorStatus.is_failure(status):
            return status
    return None


@dataclass(frozen=True)
class FailureRun:
    """Where the current run of failed checks started."""
    started_from: Optional[str]
    began_after: Optional[datetime]

    @property
    def from_up(self) -> bool:
        return self.started_from == MonitorStatus.UP.value


@dataclass(frozen=True)
class MonitorSnapshot:
    """
    The monitor as it was before the check. ``status`` is the previous
    status the transition starts from.
    """
    id: str
    user_id: str
    name: str
    url: str
    status: Optional[str]

    @classmethod
    def from_monitor(cls, monitor: Monitor, status: Optional[str] = None) -> "MonitorSnapshot":
        return cls(
            id=monitor.id,
            user_id=monitor.user_id,
            name=monitor.name,
            url=monitor.url,
            status=status if status is not None else monitor.status,
        )


@dataclass
class AlertDispatchResult:
    """Counters of one evaluation."""
    alerts_sent: int = 0
    alerts_skipped: int = 0
    alerts_failed: int = 0

    def record(self, outcome: str) -> None:
        if outcome == SENT:
            self.alerts_sent += 1
        elif outcome == SKIPPED:
            self.alerts_skipped += 1
        elif outcome == FAILED:
            self.alerts_failed += 1

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# ============================================================================
# ALERT EVALUATOR
# ============================================================================

class AlertEvaluator:
    """
    Rule evaluation and notification dispatch.

    Parameters
    ----------
    store : Datastore
        Rules, channels and alert logs.
    registry : ProviderRegistry
        One provider per channel type.
    clock : Callable
        Returns the current naive UTC time.
    """

    def __init__(
        self,
        store: Datastore,
        registry: ProviderRegistry,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.clock = clock

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def evaluate_and_dispatch(
        self,
        monitor: MonitorSnapshot,
        check_result: CheckResult,
        history: Sequence[Any],
        history_id: Optional[int] = None,
    ) -> AlertDispatchResult:
        """
        Evaluate every eligible rule of *monitor* for this check.

        Parameters
        ----------
        monitor : MonitorSnapshot
            Monitor identity; ``status`` is the previous status.
        check_result : CheckResult
            The check that produced the transition.
        history : Sequence
            Newest-first statuses (or history rows), including this check.
        history_id : int, optional
            Id of the history row of this check, used for idempotency.

        Returns
        -------
        AlertDispatchResult
        """
        result = AlertDispatchResult()
        old_status = monitor.status
        new_status = check_result.status.value

        try:
            rules = await self.store.active_alert_rules_for(monitor.id)
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Alerts] Could not load alert rules for {monitor.id}: {e}"
            )
            return result

        if not rules:
            logger.debug(f"[Alerts] No active alert rules for monitor {monitor.id}")
            return result

        consecutive = count_consecutive_failures(history, new_status)
        run = None
        if check_result.is_failure:
            try:
                run = await self.failure_run(monitor, check_result, history, consecutive)
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[Alerts] Could not resolve the failure run of {monitor.id}: {e}"
                )
                return result

        origin = f", run from {run.started_from}" if run else ""
        logger.info(
            f"[Alerts] Evaluating {len(rules)} rule(s) for \"{monitor.name}\" "
            f"({old_status} → {new_status}, failures={consecutive}{origin})"
        )

        for rule in rules:
            try:
                outcome = await self._process_rule(
                    rule, monitor, check_result, old_status, consecutive, run, history_id
                )
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[Alerts] Rule {rule.id} of monitor {monitor.id} failed: {e}"
                )
                outcome = FAILED
            result.record(outcome)

        logger.info(
            f"[Alerts] Monitor {monitor.id}: sent={result.alerts_sent}, "
            f"skipped={result.alerts_skipped}, failed={result.alerts_failed}"
        )
        return result

    # ------------------------------------------------------------------
    # RULE PROCESSING
    # ------------------------------------------------------------------

    async def _process_rule(
        self,
        rule: MonitorAlertRule,
        monitor: MonitorSnapshot,
        check_result: CheckResult,
        old_status: Optional[str],
        consecutive: int,
        run: Optional[FailureRun],
        history_id: Optional[int],
    ) -> str:
        new_status = check_result.status.value
        now = self.clock()
        idempotency_key = f"check-{history_id}:rule-{rule.id}" if history_id is not None else None

        existing = None
        if idempotency_key:
            existing = await self.store.alert_log_for_key(idempotency_key)
            if existing is not None and existing.status == AlertLogStatus.SENT.value:
                logger.debug(f"[Alerts] {idempotency_key} already sent, skipping")
                return SKIPPED

        if not await self.should_trigger(rule, old_status, new_status, consecutive, run):
            return NOT_TRIGGERED

        if await self.in_cooldown(rule, now):
            logger.debug(
                f"[Alerts] Rule {rule.id} in cooldown ({rule.cooldown_minutes} min), skipping"
            )
            return SKIPPED

        channel = rule.channel
        context = NotificationContext(
            monitor_id=monitor.id,
            monitor_name=monitor.name,
            monitor_url=monitor.url,
            channel_type=channel.type,
            channel_config=channel.config or {},
            trigger_status=new_status,
            previous_status=old_status,
            consecutive_failures=consecutive,
            response_time=check_result.response_time,
            error_message=check_result.error_message,
            triggered_at=check_result.checked_at,
        )

        if existing is not None:
            log_id = existing.id
            await self.store.update_alert_log(log_id, status=AlertLogStatus.PENDING.value, error_message=None)
        else:
            log = await self.store.insert_alert_log({
                "monitor_id": monitor.id,
                "monitor_alert_rule_id": rule.id,
                "notification_channel_id": channel.id,
                "user_id": monitor.user_id,
                "alert_type": channel.type,
                "status": AlertLogStatus.PENDING.value,
                "trigger_status": new_status,
                "previous_status": old_status,
                "consecutive_failures": consecutive,
                "message": email_subject(context),
                "idempotency_key": idempotency_key,
                "created_at": now,
            })
            log_id = log.id

        logger.info(f"[Alerts] 🚨 Triggering {new_status} alert for \"{monitor.name}\" via {channel.type}")
        outcome = await self.registry.send(context)

        if outcome.success:
            await self.store.update_alert_log(
                log_id,
                status=AlertLogStatus.SENT.value,
                sent_at=self.clock(),
                provider_message_id=outcome.provider_message_id,
            )
            return SENT

        logger.warning(f"[Alerts] ✗ {channel.type} alert for {monitor.id} failed: {outcome.error}")
        await self.store.update_alert_log(
            log_id,
            status=AlertLogStatus.FAILED.value,
            error_message=outcome.error,
        )
        return FAILED

    async def failure_run(
        self,
        monitor: MonitorSnapshot,
        check_result: CheckResult,
        history: Sequence[Any],
        consecutive: int,
    ) -> FailureRun:
        """
        Locate the run of failed checks that *check_result* belongs to.

        The run began after the monitor's last healthy check. Its starting
        status comes from the history snapshot when the snapshot reaches
        past the run, otherwise from the previous status (run of one) or
        the stored healthy check.
        """
        boundary = await self.store.last_healthy_check(monitor.id, check_result.checked_at)

        started_from = status_before_failures(history)
        if started_from is None:
            if consecutive <= 1:
                started_from = monitor.status
            elif boundary is not None:
                started_from = boundary.status

        return FailureRun(
            started_from=started_from,
            began_after=boundary.checked_at if boundary is not None else None,
        )

    async def should_trigger(
        self,
        rule: MonitorAlertRule,
        old_status: Optional[str],
        new_status: str,
        consecutive: int,
        run: Optional[FailureRun] = None,
    ) -> bool:
        """Whether *rule* fires for this transition, before cooldown."""
        threshold = rule.consecutive_failures_threshold or 1

        if MonitorStatus.is_failure(new_status):
            if new_status == MonitorStatus.DOWN.value:
                enabled = rule.alert_on_down
            else:
                enabled = rule.alert_on_timeout
            if not enabled or consecutive < threshold or run is None or not run.from_up:
                return False
            # re-fires within a run are gated by the cooldown alone
            if (rule.cooldown_minutes or 0) > 0:
                return True
            return not await self.alerted_during(rule, run)
        if new_status == MonitorStatus.UP.value and MonitorStatus.is_failure(old_status):
            return bool(rule.alert_on_up) and await self.recovery_owed(rule)
        return False

    async def alerted_during(self, rule: MonitorAlertRule, run: FailureRun) -> bool:
        """Whether the rule already sent an outage alert for this run."""
        return await self.store.alert_sent_since(
            rule.id,
            after=run.began_after,
            statuses=FAILURE_STATUSES,
        )

    async def recovery_owed(self, rule: MonitorAlertRule) -> bool:
        """
        A recovery is owed when the rule's latest sent outage alert has
        not been followed by a sent recovery alert.
        """
        last_outage = await self.store.most_recent_sent_alert(rule.id, FAILURE_STATUSES)
        if last_outage is None:
            return False
        return not await self.store.alert_sent_since(
            rule.id,
            after=last_outage.sent_at,
            statuses=(MonitorStatus.UP.value,),
        )

    async def in_cooldown(self, rule: MonitorAlertRule, now: datetime) -> bool:
        cooldown = rule.cooldown_minutes or 0
        if cooldown <= 0:
            return False
        return await self.store.alert_sent_since(rule.id, after=now - timedelta(minutes=cooldown))
