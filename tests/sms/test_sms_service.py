"""Tests for SMS providers and message rendering."""

import json

import httpx
import pytest

from mohallahub.config import get_settings
from mohallahub.sms.service import (
    ConsoleSmsProvider,
    SmsService,
    WebhookSmsProvider,
    _create_provider,
    get_sms_service,
    reset_sms_service,
)


class RecordingProvider(ConsoleSmsProvider):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, phone: str, message: str) -> bool:
        self.sent.append((phone, message))
        return True


def _mock_httpx(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


class TestSmsService:
    async def test_english_message(self):
        provider = RecordingProvider()
        assert await SmsService(provider).send_otp("9876543210", "482913") is True
        phone, message = provider.sent[0]
        assert phone == "9876543210"
        assert "482913" in message
        assert "10 minutes" in message

    async def test_hindi_message(self):
        provider = RecordingProvider()
        await SmsService(provider).send_otp("9876543210", "482913", language="hi")
        assert "सत्यापन कोड" in provider.sent[0][1]

    async def test_unknown_language_falls_back_to_english(self):
        provider = RecordingProvider()
        await SmsService(provider).send_otp("9876543210", "482913", language="ta")
        assert "verification code" in provider.sent[0][1]

    async def test_console_provider(self):
        assert await ConsoleSmsProvider().send("9876543210", "hello") is True


class TestWebhookProvider:
    async def test_posts_json(self, monkeypatch):
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers.get("authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        _mock_httpx(monkeypatch, handler)
        provider = WebhookSmsProvider("https://sms.example.com/send", "tok", "MOHLLA")
        assert await provider.send("9876543210", "code 123456") is True
        assert captured["url"] == "https://sms.example.com/send"
        assert captured["auth"] == "Bearer tok"
        assert captured["body"] == {"to": "+919876543210", "sender": "MOHLLA", "message": "code 123456"}

    async def test_gateway_error_returns_false(self, monkeypatch):
        _mock_httpx(monkeypatch, lambda request: httpx.Response(503))
        provider = WebhookSmsProvider("https://sms.example.com/send", "", "MOHLLA")
        assert await provider.send("9876543210", "code 123456") is False


class TestProviderSelection:
    def test_console_default(self):
        reset_sms_service()
        assert isinstance(get_sms_service().provider, ConsoleSmsProvider)
        assert get_sms_service() is get_sms_service()
        reset_sms_service()

    def test_webhook_requires_url(self, monkeypatch):
        settings = get_settings()
        monkeypatch.setattr(settings, "sms_provider", "webhook")
        monkeypatch.setattr(settings, "sms_webhook_url", "")
        with pytest.raises(ValueError, match="MH_SMS_WEBHOOK_URL"):
            _create_provider()

    def test_webhook_selected(self, monkeypatch):
        settings = get_settings()
        monkeypatch.setattr(settings, "sms_provider", "webhook")
        monkeypatch.setattr(settings, "sms_webhook_url", "https://sms.example.com/send")
        assert isinstance(_create_provider(), WebhookSmsProvider)

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "sms_provider", "carrier-pigeon")
        with pytest.raises(ValueError, match="Unsupported SMS provider"):
            _create_provider()
