"""
OTP Email Providers
===================
Notifier adapters that deliver rendered codes.
"""

from .base import BaseEmailProvider, EmailMessage, HTTPEmailProvider
from .local import CallbackProvider, ConsoleProvider
from .http_apis import BrevoProvider, MailgunProvider, PostmarkProvider, SendGridProvider
from .smtp import SMTPProvider

__all__ = [
    # Contract
    "BaseEmailProvider",
    "EmailMessage",
    "HTTPEmailProvider",
    # Local
    "ConsoleProvider",
    "CallbackProvider",
    # HTTP APIs
    "BrevoProvider",
    "PostmarkProvider",
    "MailgunProvider",
    "SendGridProvider",
    # SMTP
    "SMTPProvider",
]
