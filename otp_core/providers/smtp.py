"""
SMTP Email Provider
===================
Direct SMTP delivery through aiosmtplib for hosts that run their own relay.
"""

from email.message import EmailMessage as MIMEMessage
from typing import Optional

import aiosmtplib
import structlog

from otp_core.errors import DeliveryError
from .base import BaseEmailProvider, EmailMessage

logger = structlog.get_logger(__name__)

SMTPS_PORT = 465


class SMTPProvider(BaseEmailProvider):
    """
    Sends through an SMTP server.

    Implicit TLS is used on port 465 unless ``use_tls`` says otherwise;
    on other ports the connection upgrades with STARTTLS when the server
    offers it (``start_tls=None``) or as forced by ``start_tls``.

    Example:
        provider = SMTPProvider("smtp.example.com", 587, "user", "pass")
    """

    name = "smtp"

    def __init__(
        self,
        hostname: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        start_tls: Optional[bool] = None,
        default_from: Optional[str] = None,
        timeout: float = 10.0,
    ):
        super().__init__()
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = port == SMTPS_PORT if use_tls is None else use_tls
        self.start_tls = False if self.use_tls else start_tls
        self.default_from = default_from or username
        self.timeout = timeout

    def build_message(self, message: EmailMessage) -> MIMEMessage:
        """Plain text part first, HTML as the preferred alternative."""
        sender = message.from_ or self.default_from
        if not sender:
            raise DeliveryError(self.name, "No sender address configured")

        mime = MIMEMessage()
        mime["From"] = sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        if message.text:
            mime.set_content(message.text)
            if message.html:
                mime.add_alternative(message.html, subtype="html")
        else:
            mime.set_content(message.html or "", subtype="html")
        return mime

    async def send(self, message: EmailMessage) -> None:
        mime = self.build_message(message)
        try:
            await aiosmtplib.send(
                mime,
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.use_tls,
                start_tls=self.start_tls,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery failed", host=self.hostname, port=self.port, error=str(e))
            raise DeliveryError(self.name, str(e)) from e

        logger.info("Email sent", provider=self.name, host=self.hostname)

    async def verify_connection(self) -> bool:
        """Connect, authenticate if configured, and quit without sending."""
        client = aiosmtplib.SMTP(
            hostname=self.hostname,
            port=self.port,
            username=self.username,
            password=self.password,
            use_tls=self.use_tls,
            start_tls=self.start_tls,
            timeout=self.timeout,
        )
        try:
            await client.connect()
            await client.quit()
            return True
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning("SMTP connection check failed", host=self.hostname, error=str(e))
            return False
