"""
SMS delivery with provider abstraction.

The console provider logs messages (development); the webhook provider posts
them as JSON to an HTTP gateway. Provider is selected via configuration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
import structlog

from mohallahub.config import get_settings

logger = structlog.get_logger()

_OTP_TEMPLATES: dict[str, str] = {
    "en": "{code} is your MohallaHub verification code. It is valid for {minutes} minutes. Do not share it with anyone.",
    "hi": "{code} आपका मोहल्ला हब सत्यापन कोड है। यह {minutes} मिनट के लिए मान्य है। इसे किसी के साथ साझा न करें।",
}


def _mask(phone: str) -> str:
    return f"******{phone[-4:]}"


class BaseSmsProvider(ABC):
    """Abstract base class for SMS delivery providers."""

    @abstractmethod
    async def send(self, phone: str, message: str) -> bool:
        """Send a text message. Returns True on success."""
        ...


class ConsoleSmsProvider(BaseSmsProvider):
    """Write messages to the log instead of delivering them."""

    async def send(self, phone: str, message: str) -> bool:
        logger.info("sms_console_delivery", to=phone, message=message)
        return True


class WebhookSmsProvider(BaseSmsProvider):
    """POST messages to an HTTP SMS gateway."""

    def __init__(self, url: str, token: str, sender_id: str, timeout: float = 10.0) -> None:
        self.url = url
        self.token = token
        self.sender_id = sender_id
        self.timeout = timeout

    async def send(self, phone: str, message: str) -> bool:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    headers=headers,
                    json={"to": f"+91{phone}", "sender": self.sender_id, "message": message},
                )
                response.raise_for_status()
        except httpx.HTTPError:
            logger.exception("sms_send_failed", to=_mask(phone), provider="webhook")
            return False
        logger.info("sms_sent", to=_mask(phone), provider="webhook")
        return True


def _create_provider() -> BaseSmsProvider:
    """Create SMS provider based on configuration."""
    settings = get_settings()
    provider_name = settings.sms_provider.lower()

    if provider_name == "console":
        return ConsoleSmsProvider()
    if provider_name == "webhook":
        if not settings.sms_webhook_url:
            msg = "MH_SMS_WEBHOOK_URL is required for the webhook SMS provider"
            raise ValueError(msg)
        return WebhookSmsProvider(
            url=settings.sms_webhook_url,
            token=settings.sms_webhook_token,
            sender_id=settings.sms_sender_id,
        )
    msg = f"Unsupported SMS provider: {provider_name}"
    raise ValueError(msg)


class SmsService:
    """Renders and dispatches outbound SMS."""

    def __init__(self, provider: BaseSmsProvider | None = None) -> None:
        self.provider = provider or _create_provider()

    async def send_otp(self, phone: str, code: str, language: str = "en") -> bool:
        """Send a verification code in the user's language (English fallback)."""
        settings = get_settings()
        template = _OTP_TEMPLATES.get(language, _OTP_TEMPLATES["en"])
        message = template.format(code=code, minutes=settings.otp_ttl_minutes)
        return await self.provider.send(phone, message)


_sms_service: SmsService | None = None


def get_sms_service() -> SmsService:
    """Get or create the SMS service singleton."""
    global _sms_service  # noqa: PLW0603
    if _sms_service is None:
        _sms_service = SmsService()
    return _sms_service


def reset_sms_service() -> None:
    """Reset the SMS service singleton (for testing)."""
    global _sms_service  # noqa: PLW0603
    _sms_service = None
