"""
Notifications Package for Uptime Pulse

Email (Resend), SMS (Twilio) and webhook providers plus the registry
the alert dispatcher resolves them from.
"""

import httpx

from config.constants import ChannelType
from config.settings import NotificationSettings
from notifications.base import (
    NotificationContext,
    NotificationOutcome,
    NotificationProvider,
    ProviderRegistry
)
from notifications.email import ResendEmailProvider
from notifications.sms import TwilioSMSProvider
from notifications.webhook import WebhookProvider


def build_provider_registry(
    settings: NotificationSettings,
    http_client: httpx.AsyncClient
) -> ProviderRegistry:
    """
    Registry with one provider per channel type, configured from settings.
    """
    return ProviderRegistry({
        ChannelType.EMAIL: ResendEmailProvider(
            http_client,
            api_key=settings.resend_api_key.get_secret_value() if settings.resend_api_key else None,
            from_email=settings.resend_from_email,
            api_url=settings.resend_api_url,
            brand=settings.brand_name,
            timeout=settings.request_timeout
        ),
        ChannelType.SMS: TwilioSMSProvider(
            http_client,
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token.get_secret_value() if settings.twilio_auth_token else None,
            from_number=settings.twilio_phone_number,
            api_base=settings.twilio_api_base,
            brand=settings.brand_name,
            timeout=settings.request_timeout
        ),
        ChannelType.WEBHOOK: WebhookProvider(
            http_client,
            timeout=settings.webhook_timeout
        ),
    })


__all__ = [
    "NotificationContext",
    "NotificationOutcome",
    "NotificationProvider",
    "ProviderRegistry",
    "ResendEmailProvider",
    "TwilioSMSProvider",
    "WebhookProvider",
    "build_provider_registry"
]
