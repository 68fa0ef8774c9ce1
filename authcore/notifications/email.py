"""
Outbound email for identity proofs.

Delivery is best effort: failures are logged and reported as ``False``,
never raised into the request that issued the token.
"""

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from authcore.config import Settings, get_settings
from authcore.logging_config import get_logger, redact_email

logger = get_logger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    """Rendered message ready for delivery."""

    to: str
    subject: str
    html: str


class Mailer(Protocol):
    async def send(self, message: EmailMessage) -> bool: ...


class SMTPMailer:
    """
    SMTP delivery with STARTTLS or implicit TLS.

    With no SMTP host configured (development), messages are logged
    instead of sent.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_password
        self.smtp_use_tls = settings.smtp_use_tls
        self.from_email = settings.smtp_from_email
        self.from_name = settings.smtp_from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    async def send(self, message: EmailMessage) -> bool:
        if not self.is_configured:
            logger.info(
                "Email not sent (SMTP not configured)",
                extra={"to": redact_email(message.to), "subject": message.subject},
            )
            return True

        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Email delivery failed",
                extra={
                    "to": redact_email(message.to),
                    "subject": message.subject,
                    "error": str(e),
                },
            )
            return False

        logger.info("Email sent", extra={"to": redact_email(message.to), "subject": message.subject})
        return True

    def _send_sync(self, message: EmailMessage) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = message.to
        msg.attach(MIMEText(message.html, "html"))

        context = ssl.create_default_context()
        if self.smtp_use_tls:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, message.to, msg.as_string())
        else:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, message.to, msg.as_string())


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    """Process-wide mailer; FastAPI dependency."""
    global _mailer
    if _mailer is None:
        _mailer = SMTPMailer()
    return _mailer
