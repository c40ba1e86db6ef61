"""SMTP transport.

Sends synchronously; callers in async code off-load it with
``asyncio.to_thread``. Failures raise so the caller can record them.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from marketdaily.config import Settings, get_settings
from marketdaily.core.exceptions import EmailTransportNotConfiguredError

logger = logging.getLogger(__name__)


def build_message(sender: str, to_address: str, subject: str, html_body: str, text_body: str = "") -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to_address
    # Clients prefer the last alternative, so HTML goes last
    if text_body:
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    return msg


class SmtpTransport:
    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.smtp_host)

    def send(self, to_address: str, subject: str, html_body: str, text_body: str = "") -> None:
        """Send one message. Raises on any failure."""
        settings = self._settings
        if not settings.smtp_host:
            logger.debug("SMTP not configured, cannot send email to %s", to_address)
            raise EmailTransportNotConfiguredError()

        msg = build_message(settings.smtp_from, to_address, subject, html_body, text_body)
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_user and settings.smtp_password:
                server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(msg)
        logger.info("Email sent to %s: %s", to_address, subject)
