"""
SMS Notification Provider for Uptime Pulse

Sends SMS alerts through the Twilio REST API.
"""

from typing import Optional

import httpx

from config.constants import ChannelType
from exceptions import ProviderNotConfiguredError
from notifications.base import NotificationContext, NotificationOutcome, NotificationProvider
from notifications.templates import render_sms


class TwilioSMSProvider(NotificationProvider):
    """Twilio-backed SMS provider."""

    channel_type = ChannelType.SMS

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        api_base: str = "https://api.twilio.com/2010-04-01",
        brand: str = "Uptime Pulse",
        timeout: float = 15.0
    ):
        super().__init__(http_client)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")
        self.brand = brand
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def _deliver(self, context: NotificationContext) -> NotificationOutcome:
        if not self.is_configured:
            raise ProviderNotConfiguredError(
                "Twilio not configured",
                channel_type=self.channel_type.value
            )

        response = await self.http_client.post(
            f"{self.api_base}/Accounts/{self.account_sid}/Messages.json",
            data={
                "To": context.channel_config["phone"],
                "From": self.from_number,
                "Body": render_sms(context, self.brand),
            },
            auth=(self.account_sid, self.auth_token),
            timeout=self.timeout
        )

        if response.status_code >= 400:
            return NotificationOutcome.fail(
                f"Twilio returned {response.status_code}: {response.text[:200]}"
            )

        sid = response.json().get("sid")
        self.logger.info(f"SMS alert sent for {context.monitor_id} ({sid})")
        return NotificationOutcome.ok(sid)
