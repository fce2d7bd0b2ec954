"""
In-Memory OTP Store
===================
Process-local record store for development and tests.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from otp_core.errors import DuplicateKeyError, RecordNotFoundError
from otp_core.otp.models import OTPChannel, OTPRecord, ensure_aware, utcnow
from .base import BaseOTPStore

logger = structlog.get_logger(__name__)


class InMemoryOTPStore(BaseOTPStore):
    """
    Dict-backed store with the same uniqueness rules as a database.

    Records are copied in and out so callers never mutate stored state
    directly. With ``single_active`` on, a create is also rejected while
    another open record exists for the same (destination, context,
    channel), like the partial unique index of the SQL store.
    """

    name = "memory"

    def __init__(self, single_active: bool = True):
        self.single_active = single_active
        self._records: Dict[str, OTPRecord] = {}
        self._lock = threading.Lock()

    def _matching(self, destination: str, context: str, channel: OTPChannel) -> List[OTPRecord]:
        return [
            record for record in self._records.values()
            if record.destination == destination
            and record.context == context
            and record.channel == channel
        ]

    async def create(self, record: OTPRecord) -> OTPRecord:
        with self._lock:
            for existing in self._records.values():
                if existing.key == record.key:
                    raise DuplicateKeyError(record.key)

            if self.single_active:
                for existing in self._matching(record.destination, record.context, record.channel):
                    if existing.is_open:
                        raise DuplicateKeyError(
                            f"{record.channel.value}:{record.context}:{record.destination}"
                        )

            now = utcnow()
            stored = replace(record, id=uuid.uuid4().hex, created_at=now, updated_at=now)
            self._records[stored.id] = stored
            return replace(stored)

    async def find_by_session_key(
        self,
        destination: str,
        context: str,
        session_id: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> Optional[OTPRecord]:
        with self._lock:
            for record in self._matching(destination, context, channel):
                if record.session_id == session_id:
                    return replace(record)
        return None

    async def find_active(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> Optional[OTPRecord]:
        with self._lock:
            active = [r for r in self._matching(destination, context, channel) if r.is_active]
        if not active:
            return None
        return replace(max(active, key=lambda r: r.created_at))

    async def update(self, record_id: str, **changes: Any) -> OTPRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            updated = replace(record, **changes, updated_at=utcnow())
            self._records[record_id] = updated
            return replace(updated)

    async def mark_used(self, record_id: str) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or not record.is_open:
                return False
            self._records[record_id] = replace(record, is_used=True, updated_at=utcnow())
            return True

    async def record_failed_attempt(self, record_id: str) -> Optional[OTPRecord]:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or not record.is_open:
                return None
            attempts = min(record.attempts + 1, record.max_attempts)
            updated = replace(
                record,
                attempts=attempts,
                is_locked=attempts >= record.max_attempts,
                updated_at=utcnow(),
            )
            self._records[record_id] = updated
            return replace(updated)

    async def retire_open(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> int:
        now = utcnow()
        with self._lock:
            stale = [r for r in self._matching(destination, context, channel) if r.is_open]
            for record in stale:
                self._records[record.id] = replace(record, is_used=True, updated_at=now)
        return len(stale)

    async def delete(self, record_id: str) -> None:
        with self._lock:
            self._records.pop(record_id, None)

    async def delete_expired(self) -> int:
        with self._lock:
            expired = [rid for rid, record in self._records.items() if record.is_expired]
            for rid in expired:
                del self._records[rid]
        return len(expired)

    async def delete_settled(self, older_than: datetime) -> int:
        with self._lock:
            settled = [
                rid for rid, record in self._records.items()
                if (record.is_used or record.is_locked)
                and ensure_aware(record.updated_at) < older_than
            ]
            for rid in settled:
                del self._records[rid]
        return len(settled)

    async def reconcile_duplicates(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> int:
        with self._lock:
            records = sorted(
                self._matching(destination, context, channel),
                key=lambda r: r.created_at,
                reverse=True,
            )
            stale = records[1:]
            for record in stale:
                del self._records[record.id]
        if stale:
            logger.info("Removed conflicting OTP records", removed=len(stale), context=context)
        return len(stale)

    async def get(self, record_id: str) -> Optional[OTPRecord]:
        """Fetch by id (test and admin helper)."""
        with self._lock:
            record = self._records.get(record_id)
            return replace(record) if record else None

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
