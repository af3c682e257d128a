"""Delivery of one-time login codes.

SMTP delivery goes through fastapi-mail. The console backend only logs the
code and is meant for local development.
"""

import logging
from typing import Protocol, runtime_checkable

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from app.core.config import Settings

logger = logging.getLogger(__name__)

ONE_TIME_CODE_SUBJECT = "Rugalika News - Kode ya Kwinjira / Login Code"


@runtime_checkable
class EmailDelivery(Protocol):
    """Sends a one-time code to a user.

    Returns True on success and False on any delivery failure. Implementations
    must not raise.
    """

    async def send_one_time_code_message(self, email: str, code: str) -> bool: ...


def render_one_time_code_html(code: str) -> str:
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        "<h2>Rugalika News</h2>"
        "<p>Kode yawe yo kwinjira / Your login code:</p>"
        f"<p style=\"font-size: 32px; font-weight: bold; letter-spacing: 6px;\">{code}</p>"
        "<p><strong>Important:</strong> This code expires in 5 minutes. "
        "Do not share it with anyone.</p>"
        "<p>If you did not request this code, you can ignore this email.</p>"
        "</div>"
    )


class SMTPEmailDelivery:
    """Sends codes over SMTP using fastapi-mail."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._mailer: FastMail | None = None

    def _get_mailer(self) -> FastMail:
        if self._mailer is None:
            s = self._settings
            conf = ConnectionConfig(
                MAIL_USERNAME=s.mail_username,
                MAIL_PASSWORD=s.mail_password,
                MAIL_FROM=s.mail_from,
                MAIL_FROM_NAME=s.mail_from_name,
                MAIL_PORT=s.mail_port,
                MAIL_SERVER=s.mail_server,
                MAIL_STARTTLS=s.mail_starttls,
                MAIL_SSL_TLS=s.mail_ssl_tls,
                USE_CREDENTIALS=bool(s.mail_username),
                VALIDATE_CERTS=True,
            )
            self._mailer = FastMail(conf)
        return self._mailer

    async def send_one_time_code_message(self, email: str, code: str) -> bool:
        message = MessageSchema(
            subject=ONE_TIME_CODE_SUBJECT,
            recipients=[email],
            body=render_one_time_code_html(code),
            subtype=MessageType.html,
        )
        try:
            await self._get_mailer().send_message(message)
        except Exception as e:
            logger.error(f"Failed to send login code email to {email}: {e}")
            return False
        logger.info(f"Login code email sent to {email}")
        return True


class ConsoleEmailDelivery:
    """Writes codes to the log instead of sending them."""

    async def send_one_time_code_message(self, email: str, code: str) -> bool:
        logger.warning(f"[console email] Login code for {email}: {code}")
        return True


def get_email_delivery(settings: Settings) -> EmailDelivery:
    """Select the delivery backend configured by ``EMAIL_BACKEND``."""
    if settings.email_backend == "smtp":
        if not settings.mail_server or not settings.mail_from:
            logger.warning("SMTP email backend selected but MAIL_SERVER/MAIL_FROM not set")
        return SMTPEmailDelivery(settings)
    return ConsoleEmailDelivery()
