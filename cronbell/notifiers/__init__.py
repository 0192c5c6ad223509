"""Notification backends."""

from .mail import MailError, Mailer
from .render import DigestRenderer, RenderError

__all__ = ["DigestRenderer", "MailError", "Mailer", "RenderError"]
