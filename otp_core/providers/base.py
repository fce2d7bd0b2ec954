"""
Email Provider Base
===================
Notifier contract and shared HTTP plumbing for email APIs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
import structlog

from otp_core.errors import DeliveryError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    """A rendered message ready for delivery."""
    to: str
    subject: str
    html: Optional[str] = None
    text: Optional[str] = None
    from_: Optional[str] = None

    def __repr__(self) -> str:
        # Bodies carry the code
        return f"EmailMessage(to={self.to!r}, subject={self.subject!r})"


class BaseEmailProvider(ABC):
    """
    Abstract base class for email providers.

    ``send`` raises on failure; the engine treats any exception as a
    failed delivery.
    """

    name: str = "base"

    def __init__(self):
        self._is_initialized = False

    async def initialize(self) -> None:
        """Initialize the provider (e.g., create HTTP clients)."""
        self._is_initialized = True
        logger.info("Email provider initialized", provider=self.name)

    async def close(self) -> None:
        """Clean up resources (e.g., close HTTP clients)."""
        self._is_initialized = False
        logger.info("Email provider closed", provider=self.name)

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """
        Deliver a message.

        Args:
            message: Rendered email

        Raises:
            DeliveryError: If the transport rejected the message
        """

    async def verify_connection(self) -> bool:
        """Read-only connection check; must never send a message."""
        return True


class HTTPEmailProvider(BaseEmailProvider):
    """
    Base for providers with a JSON/form HTTP API.

    Subclasses describe the request; this class owns the httpx client,
    status checking and error translation.
    """

    base_url: str = ""
    verify_path: str = ""
    success_codes: Tuple[int, ...] = (200, 201, 202)

    def __init__(
        self,
        default_from: str = "noreply@yourdomain.com",
        sender_name: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            default_from: Sender address when the message has none
            sender_name: Display name for the sender, where supported
            timeout: HTTP timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        super().__init__()
        self.default_from = default_from
        self.sender_name = sender_name
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def _auth(self) -> Optional[httpx.Auth]:
        return None

    @abstractmethod
    def _build_request(self, message: EmailMessage) -> Tuple[str, Dict[str, Any]]:
        """Return (path, httpx request kwargs) for a send."""

    async def initialize(self) -> None:
        """Create HTTP client with auth."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            auth=self._auth(),
            timeout=self.timeout,
            transport=self._transport,
        )
        await super().initialize()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        await super().close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.initialize()
        return self._client

    async def send(self, message: EmailMessage) -> None:
        client = await self._ensure_client()
        path, request_kwargs = self._build_request(message)

        try:
            response = await client.post(path, **request_kwargs)
        except httpx.HTTPError as e:
            logger.error("Email send failed", provider=self.name, error=str(e))
            raise DeliveryError(self.name, str(e)) from e

        if response.status_code not in self.success_codes:
            detail = response.text[:200] or response.reason_phrase
            logger.error(
                "Email send rejected",
                provider=self.name,
                status_code=response.status_code,
            )
            raise DeliveryError(self.name, detail, status_code=response.status_code)

        logger.info("Email sent", provider=self.name, status_code=response.status_code)

    async def verify_connection(self) -> bool:
        if not self.verify_path:
            return True
        try:
            client = await self._ensure_client()
            response = await client.get(self.verify_path)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Email provider unreachable", provider=self.name, error=str(e))
            return False
