"""
Email and SMS transport providers.

Email goes out through SMTP (default in production), the Resend API, or the
console. SMS goes out through Twilio or the console. Providers raise
``DeliveryError`` on failure; the dispatcher turns that into a retry.
"""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from email.mime.text import MIMEText

import httpx
import structlog

from gatoryde.config import Settings, get_settings
from gatoryde.exceptions import DeliveryError
from gatoryde.notifications.templates import redact_pii

logger = structlog.get_logger()


class BaseEmailProvider(ABC):
    """Abstract base class for email delivery providers."""

    name = "email"

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Send an email. Raises DeliveryError on failure."""
        ...


class BaseSMSProvider(ABC):
    """Abstract base class for SMS delivery providers."""

    name = "sms"

    @abstractmethod
    async def send_sms(self, to: str, body: str) -> None:
        """Send a text message. Raises DeliveryError on failure."""
        ...


class ConsoleEmailProvider(BaseEmailProvider):
    """Log emails instead of sending them. Development default."""

    name = "console"

    async def send_email(self, to: str, subject: str, body: str) -> None:
        logger.info("email_console", to=redact_pii(to), subject=subject, length=len(body))


class ConsoleSMSProvider(BaseSMSProvider):
    name = "console"

    async def send_sms(self, to: str, body: str) -> None:
        logger.info("sms_console", to=redact_pii(to), length=len(body))


class SMTPProvider(BaseEmailProvider):
    """Send emails via SMTP using aiosmtplib."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.from_name = from_name
        self.use_tls = use_tls

    async def send_email(self, to: str, subject: str, body: str) -> None:
        import aiosmtplib

        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = f"{self.from_name} <{self.from_address}>"
        msg["To"] = to
        msg["Subject"] = subject

        try:
            tls_context = ssl.create_default_context() if self.use_tls else None
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
                tls_context=tls_context,
            )
        except aiosmtplib.SMTPException as exc:
            raise DeliveryError(f"SMTP send failed: {exc}") from exc
        except OSError as exc:
            raise DeliveryError(f"SMTP connection failed: {exc}") from exc
        logger.info("email_sent", to=redact_pii(to), subject=subject, provider=self.name)


class ResendProvider(BaseEmailProvider):
    """Send emails via Resend API."""

    name = "resend"
    endpoint = "https://api.resend.com/emails"

    def __init__(self, api_key: str, from_address: str, from_name: str) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.from_name = from_name

    async def send_email(self, to: str, subject: str, body: str) -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.endpoint,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self.from_name} <{self.from_address}>",
                        "to": [to],
                        "subject": subject,
                        "text": body,
                    },
                    timeout=10.0,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(f"Resend rejected message: HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Resend request failed: {exc}") from exc
        logger.info("email_sent", to=redact_pii(to), subject=subject, provider=self.name)


class TwilioSMSProvider(BaseSMSProvider):
    """Send text messages via the Twilio REST API."""

    name = "twilio"

    def __init__(self, account_sid: str, auth_token: str, from_phone: str) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_phone = from_phone

    @property
    def endpoint(self) -> str:
        return f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    async def send_sms(self, to: str, body: str) -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.endpoint,
                    auth=(self.account_sid, self.auth_token),
                    data={"From": self.from_phone, "To": to, "Body": body},
                    timeout=10.0,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(f"Twilio rejected message: HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Twilio request failed: {exc}") from exc
        logger.info("sms_sent", to=redact_pii(to), provider=self.name)


class NotificationTransport:
    """Routes a rendered message to the provider for its channel."""

    def __init__(self, email: BaseEmailProvider, sms: BaseSMSProvider) -> None:
        self.email = email
        self.sms = sms

    async def send(self, channel: str, to: str, subject: str | None, body: str) -> None:
        if channel == "email":
            if not subject:
                raise DeliveryError("Email notifications require a subject")
            await self.email.send_email(to, subject, body)
        elif channel == "sms":
            await self.sms.send_sms(to, body)
        else:
            raise DeliveryError(f"Unsupported channel: {channel}")


def create_email_provider(settings: Settings) -> BaseEmailProvider:
    provider_name = settings.email_provider.lower()

    if provider_name == "console":
        return ConsoleEmailProvider()
    if provider_name == "smtp":
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            use_tls=settings.smtp_use_tls,
        )
    if provider_name == "resend":
        return ResendProvider(
            api_key=settings.resend_api_key,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
        )
    msg = f"Unsupported email provider: {provider_name}"
    raise ValueError(msg)


def create_sms_provider(settings: Settings) -> BaseSMSProvider:
    provider_name = settings.sms_provider.lower()

    if provider_name == "console":
        return ConsoleSMSProvider()
    if provider_name == "twilio":
        return TwilioSMSProvider(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_phone=settings.twilio_from_phone,
        )
    msg = f"Unsupported SMS provider: {provider_name}"
    raise ValueError(msg)


def create_transport(settings: Settings | None = None) -> NotificationTransport:
    """Create the transport selected by configuration."""
    settings = settings or get_settings()
    return NotificationTransport(email=create_email_provider(settings), sms=create_sms_provider(settings))
