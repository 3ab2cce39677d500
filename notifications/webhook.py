"""
Webhook Notification Provider for Uptime Pulse

POSTs a JSON alert payload to the channel's ``webhook_url``.
"""

import time

import httpx

from config.constants import ChannelType
from notifications.base import NotificationContext, NotificationOutcome, NotificationProvider
from notifications.templates import webhook_payload


class WebhookProvider(NotificationProvider):
    """Generic HTTP webhook provider. Any non-2xx answer is a failure."""

    channel_type = ChannelType.WEBHOOK

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
        source: str = "uptime-pulse",
        user_agent: str = "Uptime-Pulse-Webhook/1.0"
    ):
        super().__init__(http_client)
        self.timeout = timeout
        self.source = source
        self.user_agent = user_agent

    async def _deliver(self, context: NotificationContext) -> NotificationOutcome:
        response = await self.http_client.post(
            context.channel_config["webhook_url"],
            json=webhook_payload(context, self.source),
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout
        )

        if not response.is_success:
            return NotificationOutcome.fail(
                f"Webhook failed with status {response.status_code}: {response.reason_phrase}"
            )

        return NotificationOutcome.ok(f"webhook-{int(time.time() * 1000)}")
