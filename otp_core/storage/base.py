"""
Record Store Contract
=====================
Persistence boundary for code attempt records.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from otp_core.otp.models import OTPChannel, OTPRecord


class BaseOTPStore(ABC):
    """
    Abstract base class for OTP record stores.

    Implementations must raise ``DuplicateKeyError`` from ``create`` when a
    record with the same (channel, context, session_id) already exists, or
    when an open record (not used, not locked) exists for the same
    (destination, context, channel). ``update`` raises
    ``RecordNotFoundError`` for an unknown id.
    """

    name: str = "base"

    @abstractmethod
    async def create(self, record: OTPRecord) -> OTPRecord:
        """Persist a new record and return it with ``id`` set."""

    @abstractmethod
    async def find_by_session_key(
        self,
        destination: str,
        context: str,
        session_id: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> Optional[OTPRecord]:
        """Record issued for exactly this session, if any."""

    @abstractmethod
    async def find_active(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> Optional[OTPRecord]:
        """Most recently created record that is not used, locked or expired."""

    @abstractmethod
    async def update(self, record_id: str, **changes: Any) -> OTPRecord:
        """Apply field changes and return the updated record."""

    @abstractmethod
    async def mark_used(self, record_id: str) -> bool:
        """
        Consume a record if it is still open (not used, not locked).

        Returns False when another caller consumed or locked it first.
        """

    @abstractmethod
    async def record_failed_attempt(self, record_id: str) -> Optional[OTPRecord]:
        """
        Atomically count one failed attempt against an open record.

        The counter is clamped at ``max_attempts`` and the record is locked
        when it reaches the ceiling. Returns the updated record, or None if
        the record is no longer open.
        """

    @abstractmethod
    async def retire_open(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> int:
        """Mark every open record for a key used, expired ones included."""

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """Remove a record. Unknown ids are ignored."""

    @abstractmethod
    async def delete_expired(self) -> int:
        """Remove every record past ``expires_at``; return the count."""

    @abstractmethod
    async def delete_settled(self, older_than: datetime) -> int:
        """Remove used or locked records last touched before ``older_than``."""

    @abstractmethod
    async def reconcile_duplicates(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> int:
        """Remove all but the newest record for a key; return the count."""

    async def ping(self) -> bool:
        """Read-only reachability check used by health checks."""
        return True

    async def close(self) -> None:
        """Release connections."""
