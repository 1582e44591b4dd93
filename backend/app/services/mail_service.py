"""
Outbound email for notifications.

Messages are multipart text/html; the HTML part wraps the plain body in the
branded template under `templates/emails`. When mail is disabled or no SMTP
host is configured, messages are logged instead of sent.
"""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional

import jinja2

from backend.app.utils.logging import get_logger
from backend.config.settings import MailSettings, get_settings

logger = get_logger(__name__)

templates_path = Path(__file__).resolve().parent.parent / "templates" / "emails"
template_env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(searchpath=str(templates_path)),
    autoescape=True,
)


@dataclass(frozen=True)
class MailMessage:
    to: str
    subject: str
    text: str
    html: str


class Mailer(ABC):
    """Transport accepting one message for one recipient."""

    @abstractmethod
    async def send(self, message: MailMessage) -> None:
        """Deliver a message; raise on failure."""

    @abstractmethod
    async def verify(self) -> None:
        """Check the transport is reachable; raise on failure."""

    def compose(self, to: str, subject: str, body: str) -> MailMessage:
        return MailMessage(to=to, subject=subject, text=body, html=body)


def render_notification_html(subject: str, body: str, settings: MailSettings) -> str:
    template = template_env.get_template("notification.html")
    return template.render(
        title=subject,
        body=body,
        brand_name=settings.brand_name,
        logo_url=settings.logo_url,
        mail_domain=settings.mail_domain,
        year=datetime.now(timezone.utc).year,
    )


class SmtpMailer(Mailer):
    """Email transport over SMTP."""

    def __init__(self, settings: Optional[MailSettings] = None):
        self.settings = settings or get_settings().mail

    @property
    def is_configured(self) -> bool:
        return self.settings.enabled and bool(self.settings.smtp_host)

    def compose(self, to: str, subject: str, body: str) -> MailMessage:
        return MailMessage(
            to=to,
            subject=subject,
            text=body,
            html=render_notification_html(subject, body, self.settings),
        )

    async def send(self, message: MailMessage) -> None:
        if not self.is_configured:
            logger.info(
                "Mail disabled, email not sent",
                recipient=message.to,
                subject=message.subject
            )
            return
        await asyncio.to_thread(self._send_sync, message)

    async def verify(self) -> None:
        if not self.is_configured:
            raise RuntimeError("SMTP transport is not configured")
        await asyncio.to_thread(self._verify_sync)

    def _build_mime(self, message: MailMessage) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = self.settings.from_address
        msg['To'] = message.to
        msg.attach(MIMEText(message.text, 'plain', 'utf-8'))
        msg.attach(MIMEText(message.html, 'html', 'utf-8'))
        return msg

    def _connect(self) -> smtplib.SMTP:
        server = smtplib.SMTP(
            self.settings.smtp_host,
            self.settings.smtp_port,
            timeout=self.settings.timeout_seconds
        )
        if self.settings.use_tls:
            server.starttls()
        if self.settings.smtp_user and self.settings.smtp_password:
            server.login(self.settings.smtp_user, self.settings.smtp_password)
        return server

    def _send_sync(self, message: MailMessage) -> None:
        server = self._connect()
        try:
            server.send_message(self._build_mime(message))
        finally:
            server.quit()
        logger.debug("Email sent", recipient=message.to, subject=message.subject)

    def _verify_sync(self) -> None:
        server = self._connect()
        try:
            status, _ = server.noop()
            if status != 250:
                raise smtplib.SMTPResponseException(status, b"NOOP rejected")
        finally:
            server.quit()
