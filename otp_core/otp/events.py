"""
OTP Events
==========
Fire-and-forget observer hooks for request, send, verify and fail.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

import structlog

from .models import OTPChannel, RequestMeta, utcnow

logger = structlog.get_logger(__name__)


class OTPEventType(str, Enum):
    REQUEST = "request"
    SEND = "send"
    VERIFY = "verify"
    FAIL = "fail"


@dataclass(frozen=True)
class OTPEvent:
    """Payload handed to observer hooks. Never carries the code."""
    type: OTPEventType
    destination: str
    context: str
    request_meta: Optional[RequestMeta]
    session_id: str = ""
    channel: OTPChannel = OTPChannel.EMAIL
    error: Optional[Exception] = None
    timestamp: datetime = field(default_factory=utcnow)


EventHandler = Callable[[OTPEvent], Union[None, Awaitable[None]]]


@dataclass
class EventHandlers:
    """
    Optional handler slots. Sync and async callables are both accepted.

    Async handlers are awaited for at most ``timeout`` seconds; a slow hook
    is cancelled rather than holding up issuance or verification.
    """
    on_request: Optional[EventHandler] = None
    on_send: Optional[EventHandler] = None
    on_verify: Optional[EventHandler] = None
    on_fail: Optional[EventHandler] = None
    timeout: float = 1.0

    def handler_for(self, event_type: OTPEventType) -> Optional[EventHandler]:
        return getattr(self, f"on_{event_type.value}")

    async def dispatch(self, event: OTPEvent) -> None:
        """
        Deliver an event to its handler.

        Handler failures and timeouts are logged and discarded here so they
        never reach the authentication path.
        """
        handler = self.handler_for(event.type)
        if handler is None:
            return
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await asyncio.wait_for(result, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("OTP event handler timed out", event_type=event.type.value, timeout=self.timeout)
        except Exception as e:
            logger.warning("OTP event handler failed", event_type=event.type.value, error=str(e))
