"""
Local Email Providers
=====================
Console output for development and a callback wrapper for custom transports.
"""

import inspect
import sys
from typing import Awaitable, Callable, Optional, TextIO, Union

import structlog

from otp_core.errors import DeliveryError
from .base import BaseEmailProvider, EmailMessage

logger = structlog.get_logger(__name__)


class ConsoleProvider(BaseEmailProvider):
    """
    Writes messages to a stream instead of sending them.

    For development only: the message body, including the code, is
    printed to the stream. The log line carries metadata only.
    """

    name = "console"

    def __init__(
        self,
        enabled: bool = True,
        stream: Optional[TextIO] = None,
        default_from: str = "noreply@demo.com",
    ):
        super().__init__()
        self.enabled = enabled
        self.stream = stream
        self.default_from = default_from

    async def send(self, message: EmailMessage) -> None:
        if not self.enabled:
            return

        stream = self.stream or sys.stdout
        stream.write(
            f"--- email ---\n"
            f"From: {message.from_ or self.default_from}\n"
            f"To: {message.to}\n"
            f"Subject: {message.subject}\n\n"
            f"{message.text or ''}\n"
            f"--- end ---\n"
        )
        stream.flush()

        logger.info(
            "Console email written",
            subject=message.subject,
            has_html=bool(message.html),
            has_text=bool(message.text),
        )


SendFunction = Callable[[EmailMessage], Union[None, Awaitable[None]]]
VerifyFunction = Callable[[], Union[bool, Awaitable[bool]]]


class CallbackProvider(BaseEmailProvider):
    """Delegates delivery to a host-supplied function (sync or async)."""

    name = "callback"

    def __init__(
        self,
        send_function: SendFunction,
        verify_function: Optional[VerifyFunction] = None,
    ):
        super().__init__()
        self.send_function = send_function
        self.verify_function = verify_function

    async def send(self, message: EmailMessage) -> None:
        try:
            result = self.send_function(message)
            if inspect.isawaitable(result):
                await result
        except DeliveryError:
            raise
        except Exception as e:
            raise DeliveryError(self.name, str(e) or type(e).__name__) from e

    async def verify_connection(self) -> bool:
        if self.verify_function is None:
            return True
        try:
            result = self.verify_function()
            if inspect.isawaitable(result):
                result = await result
            return bool(result)
        except Exception as e:
            logger.warning("Email provider verification failed", provider=self.name, error=str(e))
            return False
