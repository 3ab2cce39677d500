"""
Email Notification Provider for Uptime Pulse

Delivers alert emails through the Resend HTTP API.
"""

from typing import Optional

import httpx

from config.constants import ChannelType
from exceptions import ProviderNotConfiguredError
from notifications.base import NotificationContext, NotificationOutcome, NotificationProvider
from notifications.templates import render_email


class ResendEmailProvider(NotificationProvider):
    """
    Resend-backed email provider.

    Args:
        http_client: Shared httpx client
        api_key: Resend API key; without it every send fails
        from_email: Sender address
        api_url: Resend endpoint
        brand: Product name shown in the message
        timeout: Request timeout in seconds
    """

    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        from_email: str,
        api_url: str = "https://api.resend.com/emails",
        brand: str = "Uptime Pulse",
        timeout: float = 15.0
    ):
        super().__init__(http_client)
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url
        self.brand = brand
        self.timeout = timeout

    async def _deliver(self, context: NotificationContext) -> NotificationOutcome:
        if not self.api_key:
            raise ProviderNotConfiguredError(
                "Email provider not configured",
                channel_type=self.channel_type.value
            )

        subject, html, text = render_email(context, self.brand)
        response = await self.http_client.post(
            self.api_url,
            json={
                "from": self.from_email,
                "to": [context.channel_config["email"]],
                "subject": subject,
                "html": html,
                "text": text,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout
        )

        if response.status_code >= 400:
            return NotificationOutcome.fail(
                f"Email API returned {response.status_code}: {response.text[:200]}"
            )

        message_id = response.json().get("id")
        self.logger.info(f"Email alert sent for {context.monitor_id} ({message_id})")
        return NotificationOutcome.ok(message_id)
