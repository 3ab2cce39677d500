"""Tests for the notification providers.

Uses respx to mock the Resend, Twilio and webhook endpoints and verify:
- request shape per provider
- non-2xx answers and transport errors become failed outcomes
- invalid channel configs fail before any request is made
"""

from __future__ import annotations

import json
from datetime import datetime

import httpx
import pytest
import respx

from config.constants import ChannelType
from config.settings import NotificationSettings
from notifications import (
    NotificationContext,
    ProviderRegistry,
    ResendEmailProvider,
    TwilioSMSProvider,
    WebhookProvider,
    build_provider_registry
)
from notifications.templates import render_email, render_sms, webhook_payload


TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"


def make_context(channel_type: str, config: dict, **overrides) -> NotificationContext:
    values = {
        "monitor_id": "m-1",
        "monitor_name": "Example API",
        "monitor_url": "https://api.example.com/health",
        "channel_type": channel_type,
        "channel_config": config,
        "trigger_status": "down",
        "previous_status": "up",
        "consecutive_failures": 3,
        "response_time": 1200,
        "error_message": "HTTP 503: Service Unavailable",
        "triggered_at": datetime(2026, 1, 5, 12, 0, 0),
    }
    values.update(overrides)
    return NotificationContext(**values)


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_email_posts_to_resend() -> None:
    with respx.mock(base_url="https://api.resend.com") as mock:
        route = mock.post("/emails").respond(200, json={"id": "email-123"})

        async with httpx.AsyncClient() as client:
            provider = ResendEmailProvider(client, api_key="re_test", from_email="alerts@pulse.dev")
            outcome = await provider.send(make_context("email", {"email": "ops@example.com"}))

    assert outcome.success
    assert outcome.provider_message_id == "email-123"
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer re_test"
    body = json.loads(request.content)
    assert body["to"] == ["ops@example.com"]
    assert body["from"] == "alerts@pulse.dev"
    assert body["subject"] == "🚨 Example API is down"


@pytest.mark.asyncio
async def test_email_without_api_key_fails() -> None:
    async with httpx.AsyncClient() as client:
        provider = ResendEmailProvider(client, api_key=None, from_email="alerts@pulse.dev")
        outcome = await provider.send(make_context("email", {"email": "ops@example.com"}))

    assert not outcome.success
    assert outcome.error == "Email provider not configured"


@pytest.mark.asyncio
async def test_email_api_error_is_reported() -> None:
    with respx.mock(base_url="https://api.resend.com") as mock:
        mock.post("/emails").respond(422, text="invalid from address")

        async with httpx.AsyncClient() as client:
            provider = ResendEmailProvider(client, api_key="re_test", from_email="alerts@pulse.dev")
            outcome = await provider.send(make_context("email", {"email": "ops@example.com"}))

    assert not outcome.success
    assert outcome.error == "Email API returned 422: invalid from address"


@pytest.mark.asyncio
async def test_invalid_email_config_fails_before_request() -> None:
    async with httpx.AsyncClient() as client:
        provider = ResendEmailProvider(client, api_key="re_test", from_email="alerts@pulse.dev")
        outcome = await provider.send(make_context("email", {}))

    assert not outcome.success
    assert outcome.error == "Email address is required"


# ---------------------------------------------------------------------------
# SMS
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_sms_posts_to_twilio() -> None:
    with respx.mock() as mock:
        route = mock.post(TWILIO_MESSAGES_URL).respond(201, json={"sid": "SM42"})

        async with httpx.AsyncClient() as client:
            provider = TwilioSMSProvider(client, "AC123", "token", "+15005550006")
            outcome = await provider.send(make_context("sms", {"phone": "+14155550100"}))

    assert outcome.success
    assert outcome.provider_message_id == "SM42"
    form = dict(pair.split("=", 1) for pair in route.calls.last.request.content.decode().split("&"))
    assert form["To"] == "%2B14155550100"
    assert route.calls.last.request.headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_sms_error_status_is_reported() -> None:
    with respx.mock() as mock:
        mock.post(TWILIO_MESSAGES_URL).respond(400, text="bad number")

        async with httpx.AsyncClient() as client:
            provider = TwilioSMSProvider(client, "AC123", "token", "+15005550006")
            outcome = await provider.send(make_context("sms", {"phone": "+14155550100"}))

    assert not outcome.success
    assert outcome.error.startswith("Twilio returned 400")


@pytest.mark.asyncio
async def test_sms_without_credentials_fails() -> None:
    async with httpx.AsyncClient() as client:
        provider = TwilioSMSProvider(client, None, None, None)
        outcome = await provider.send(make_context("sms", {"phone": "+14155550100"}))

    assert outcome.error == "Twilio not configured"


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_webhook_posts_json_payload() -> None:
    with respx.mock(base_url="https://hooks.example.com") as mock:
        route = mock.post("/pulse").respond(204)

        async with httpx.AsyncClient() as client:
            outcome = await WebhookProvider(client).send(
                make_context("webhook", {"webhook_url": "https://hooks.example.com/pulse"})
            )

    assert outcome.success
    assert outcome.provider_message_id.startswith("webhook-")
    body = json.loads(route.calls.last.request.content)
    assert body["monitor"]["id"] == "m-1"
    assert body["alert"]["trigger_status"] == "down"
    assert body["alert"]["timestamp"] == "2026-01-05T12:00:00.000Z"
    assert body["meta"] == {"alert_type": "webhook", "source": "uptime-pulse"}


@pytest.mark.asyncio
async def test_webhook_non_2xx_fails() -> None:
    with respx.mock(base_url="https://hooks.example.com") as mock:
        mock.post("/pulse").respond(500)

        async with httpx.AsyncClient() as client:
            outcome = await WebhookProvider(client).send(
                make_context("webhook", {"webhook_url": "https://hooks.example.com/pulse"})
            )

    assert not outcome.success
    assert outcome.error == "Webhook failed with status 500: Internal Server Error"


@pytest.mark.asyncio
async def test_webhook_timeout_fails() -> None:
    with respx.mock(base_url="https://hooks.example.com") as mock:
        mock.post("/pulse").mock(side_effect=httpx.ReadTimeout("read timed out"))

        async with httpx.AsyncClient() as client:
            outcome = await WebhookProvider(client).send(
                make_context("webhook", {"webhook_url": "https://hooks.example.com/pulse"})
            )

    assert not outcome.success
    assert outcome.error.startswith("Request timed out")


# ---------------------------------------------------------------------------
# Registry and templates
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_registry_rejects_unknown_channel_type() -> None:
    outcome = await ProviderRegistry().send(make_context("pager", {}))

    assert not outcome.success
    assert outcome.error == "Unsupported alert type: pager"


@pytest.mark.asyncio
async def test_registry_built_from_settings_covers_every_channel() -> None:
    async with httpx.AsyncClient() as client:
        registry = build_provider_registry(NotificationSettings(), client)

    for channel_type in ChannelType:
        assert channel_type.value in registry


def test_recovery_email_and_sms() -> None:
    context = make_context("email", {"email": "ops@example.com"}, trigger_status="up", previous_status="down")

    subject, html, text = render_email(context, "Uptime Pulse")

    assert subject == "✅ Example API is back online"
    assert "has recovered" in text
    assert "Error:" not in text
    assert "Example API" in html
    assert render_sms(context, "Uptime Pulse").startswith("✅ Uptime Pulse: Example API is back online")


def test_outage_sms_mentions_failure_count() -> None:
    context = make_context("sms", {"phone": "+14155550100"}, trigger_status="timeout")
    assert render_sms(context, "Uptime Pulse") == (
        "⏰ Uptime Pulse Alert: Example API is TIMEOUT (3 failures). "
        "Check: https://api.example.com/health"
    )


def test_email_html_escapes_monitor_name() -> None:
    context = make_context("email", {"email": "ops@example.com"}, monitor_name="<script>x</script>")
    _, html, _ = render_email(context, "Uptime Pulse")
    assert "<script>" not in html


def test_webhook_payload_keeps_previous_status() -> None:
    payload = webhook_payload(make_context("webhook", {}), "uptime-pulse")
    assert payload["alert"]["previous_status"] == "up"
    assert payload["alert"]["consecutive_failures"] == 3
