"""
Notification Templates for Uptime Pulse

Subject, HTML and plain text for email, the SMS line and the
webhook JSON payload.
"""

from html import escape
from typing import Any, Dict, Tuple

from config.constants import MonitorStatus
from notifications.base import NotificationContext
from utils.helpers import TimeHelper


RECOVERY_COLOR = "#22c55e"
OUTAGE_COLOR = "#ef4444"
CHANGE_COLOR = "#f59e0b"


def _status_icon(context: NotificationContext) -> str:
    if context.is_recovery:
        return "✅"
    if context.trigger_status == MonitorStatus.TIMEOUT.value:
        return "⏰"
    if context.is_outage:
        return "🚨"
    return "⚠️"


def email_subject(context: NotificationContext) -> str:
    if context.is_recovery:
        return f"✅ {context.monitor_name} is back online"
    if context.is_outage:
        return f"🚨 {context.monitor_name} is {context.trigger_status}"
    return f"⚠️ {context.monitor_name} status changed"


def _detail_lines(context: NotificationContext) -> list:
    lines = [
        ("Monitor", context.monitor_name),
        ("URL", context.monitor_url),
        ("Status", context.trigger_status.upper()),
    ]
    if context.previous_status:
        lines.append(("Previous Status", context.previous_status.upper()))
    if context.response_time is not None:
        lines.append(("Response Time", f"{context.response_time}ms"))
    if context.consecutive_failures > 1:
        lines.append(("Consecutive Failures", str(context.consecutive_failures)))
    if context.error_message and context.is_outage:
        lines.append(("Error", context.error_message))
    lines.append(("Time", TimeHelper.format_datetime(context.triggered_at) + " UTC"))
    return lines


def _advice(context: NotificationContext) -> str:
    if context.is_recovery:
        return "Good News: Your endpoint has recovered and is responding normally again."
    if context.is_outage:
        return (
            "Action Required: Your endpoint is not responding properly. "
            "Please check your service and infrastructure."
        )
    return ""


def render_email(context: NotificationContext, brand: str) -> Tuple[str, str, str]:
    """
    Render an alert email.

    Returns:
        (subject, html, text)
    """
    subject = email_subject(context)
    if context.is_recovery:
        color = RECOVERY_COLOR
    elif context.is_outage:
        color = OUTAGE_COLOR
    else:
        color = CHANGE_COLOR

    details = _detail_lines(context)
    advice = _advice(context)

    rows = "\n".join(
        f'<p><strong>{escape(label)}:</strong> {escape(value)}</p>'
        for label, value in details
    )
    advice_html = (
        f'<div style="border: 1px solid {color}; border-radius: 6px; padding: 15px; margin: 20px 0;">'
        f'<p style="margin: 0;">{escape(advice)}</p></div>'
        if advice else ""
    )

    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{escape(subject)}</title></head>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
<div style="background: {color}; color: white; padding: 20px; border-radius: 8px 8px 0 0; text-align: center;">
<h1 style="margin: 0; font-size: 24px;">{_status_icon(context)} {escape(brand)} Alert</h1>
</div>
<div style="background: #f9fafb; padding: 30px; border-radius: 0 0 8px 8px; border: 1px solid #e5e7eb;">
<h2 style="color: {color}; margin-top: 0;">{escape(context.monitor_name)}</h2>
<div style="background: white; padding: 20px; border-radius: 6px; border-left: 4px solid {color};">
{rows}
</div>
{advice_html}
<p style="color: #6b7280; font-size: 14px;">This alert was sent by {escape(brand)}.</p>
</div>
</body>
</html>"""

    text_lines = [f"{brand} Alert - {context.monitor_name}", ""]
    text_lines.extend(f"{label}: {value}" for label, value in details)
    if advice:
        text_lines.extend(["", advice])
    text_lines.extend(["", f"This alert was sent by {brand}."])

    return subject, html, "\n".join(text_lines)


def render_sms(context: NotificationContext, brand: str) -> str:
    """Single-line SMS body."""
    if context.is_recovery:
        return f"✅ {brand}: {context.monitor_name} is back online! {context.monitor_url}"

    failures = (
        f" ({context.consecutive_failures} failures)"
        if context.consecutive_failures > 1 else ""
    )
    return (
        f"{_status_icon(context)} {brand} Alert: {context.monitor_name} is "
        f"{context.trigger_status.upper()}{failures}. Check: {context.monitor_url}"
    )


def webhook_payload(context: NotificationContext, source: str) -> Dict[str, Any]:
    """JSON body POSTed to webhook channels."""
    return {
        "monitor": {
            "id": context.monitor_id,
            "name": context.monitor_name,
            "url": context.monitor_url,
        },
        "alert": {
            "trigger_status": context.trigger_status,
            "previous_status": context.previous_status,
            "consecutive_failures": context.consecutive_failures,
            "response_time": context.response_time,
            "timestamp": TimeHelper.to_iso(context.triggered_at),
        },
        "meta": {
            "alert_type": "webhook",
            "source": source,
        },
    }
