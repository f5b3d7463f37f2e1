"""SMTP email delivery."""

import asyncio
import logging
import re
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from ..config import SmtpConfig
from ..exceptions import NotificationError

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")


def _html_to_text(html: str) -> str:
    text = _TAG.sub("", html.replace("<br/>", "\n").replace("</p>", "\n"))
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


class SmtpEmailSender:
    """
    Sends HTML email through the configured SMTP relay. smtplib is blocking,
    so each send runs in a worker thread.
    """

    def __init__(self, config: SmtpConfig):
        self.config = config

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def build_message(self, to: str, subject: str, html: str, sender_name: str = "") -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((sender_name, self.config.sender)) if sender_name else self.config.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(_html_to_text(html))
        message.add_alternative(html, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        cfg = self.config
        if cfg.use_ssl:
            with smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=cfg.timeout) as smtp:
                smtp.login(cfg.user, cfg.password)
                smtp.send_message(message)
            return
        with smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            smtp.login(cfg.user, cfg.password)
            smtp.send_message(message)

    async def send(self, to: str, subject: str, html: str, sender_name: str = "") -> None:
        """Send one HTML email.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: HTML body; a plain-text part is derived from it.
            sender_name: Optional display name for the From header.

        Raises:
            NotificationError: If SMTP is not configured or the send fails.
        """
        if not self.is_configured:
            raise NotificationError("SMTP is not configured")
        if not to:
            raise NotificationError("No recipient address for email")

        message = self.build_message(to, subject, html, sender_name)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP send failed: {type(e).__name__}: {e}") from e
        logger.info(f"Email sent to {to}: {subject}")
