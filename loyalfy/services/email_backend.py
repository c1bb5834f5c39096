"""E-mail transports used by the notification outbox."""

import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Protocol

from loyalfy import config


logger = logging.getLogger(__name__)


class EmailBackend(Protocol):
    def send_email(self, recipient: str, subject: str, html_body: str) -> None:
        ...


class SMTPEmailBackend:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        use_tls: bool,
        sender_email: str,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender_email = sender_email
        self._timeout = timeout

    def send_email(self, recipient: str, subject: str, html_body: str) -> None:
        message = EmailMessage()
        message["From"] = f'"Loyalfy" <{self._sender_email}>'
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")

        smtp = smtplib.SMTP(self._host, self._port, timeout=self._timeout)
        try:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)
        finally:
            smtp.quit()


@dataclass
class SentEmail:
    recipient: str
    subject: str
    html_body: str


@dataclass
class InMemoryEmailBackend:
    """Keeps outbound messages in memory (tests, local runs)."""

    sent: list[SentEmail] = field(default_factory=list)

    def send_email(self, recipient: str, subject: str, html_body: str) -> None:
        self.sent.append(SentEmail(recipient=recipient, subject=subject, html_body=html_body))


def build_default_backend() -> EmailBackend | None:
    if not config.SMTP_HOST or not config.SMTP_FROM:
        logger.warning("SMTP is not configured (SMTP_HOST/SMTP_FROM); notifications stay queued")
        return None

    return SMTPEmailBackend(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        username=config.SMTP_USERNAME or None,
        password=config.SMTP_PASSWORD or None,
        use_tls=config.SMTP_USE_TLS,
        sender_email=config.SMTP_FROM,
        timeout=config.NOTIFICATION_SEND_TIMEOUT_SECONDS,
    )
