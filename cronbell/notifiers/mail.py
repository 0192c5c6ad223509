"""SMTP delivery of HTML digests."""
from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Callable, Optional

from cronbell.config import MailConfig


class MailError(RuntimeError):
    """Raised when a message cannot be built or delivered."""


SmtpFactory = Callable[[MailConfig], smtplib.SMTP]


def _default_smtp_factory(config: MailConfig) -> smtplib.SMTP:
    if config.use_ssl:
        context = ssl.create_default_context()
        return smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout, context=context)
    client = smtplib.SMTP(config.host, config.port, timeout=config.timeout)
    client.starttls(context=ssl.create_default_context())
    return client


class Mailer:
    """Send HTML mail through an authenticated SMTP relay."""

    def __init__(self, config: MailConfig, *, smtp_factory: Optional[SmtpFactory] = None) -> None:
        missing = [
            label
            for label, value in (
                ("sender", config.sender),
                ("recipient", config.recipient),
            )
            if not value
        ]
        if missing:
            raise MailError(f"mail configuration is missing: {', '.join(missing)}")
        self._config = config
        self._smtp_factory = smtp_factory or _default_smtp_factory

    def build_message(self, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._config.sender
        message["To"] = self._config.recipient
        if self._config.reply_to:
            message["Reply-To"] = self._config.reply_to
        message["Subject"] = subject
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid()
        message.set_content(html, subtype="html")
        return message

    def send(self, subject: str, html: str) -> None:
        """Deliver ``html`` to the configured recipient."""

        message = self.build_message(subject, html)
        try:
            with self._smtp_factory(self._config) as client:
                if self._config.username:
                    client.login(self._config.username, self._config.password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailError(f"failed to send mail to {self._config.recipient}: {exc}") from exc


__all__ = ["MailError", "Mailer", "SmtpFactory"]
