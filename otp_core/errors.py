"""
OTP Errors
==========
Stable error codes for every failure the engine can surface.

Hosts branch on ``OTPError.code`` instead of parsing messages.
"""

from typing import Any, Dict, Optional
from enum import Enum


class OTPErrorCode(str, Enum):
    """Failure kinds surfaced to callers."""
    INVALID = "INVALID"
    EXPIRED = "EXPIRED"
    ALREADY_USED = "ALREADY_USED"
    LOCKED = "LOCKED"
    ATTEMPTS_EXCEEDED = "ATTEMPTS_EXCEEDED"
    CONTEXT_MISMATCH = "CONTEXT_MISMATCH"
    RATE_LIMITED = "RATE_LIMITED"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    MISCONFIGURED_SECRET = "MISCONFIGURED_SECRET"
    INVALID_CONFIG = "INVALID_CONFIG"


class OTPError(Exception):
    """Raised by the engine for every expected failure."""

    def __init__(
        self,
        code: OTPErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"OTPError(code={self.code.value!r}, message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Payload safe to hand to an end user."""
        payload: Dict[str, Any] = {
            "error": self.code.value,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class DuplicateKeyError(Exception):
    """A store refused a record because its key already exists."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Duplicate OTP record key: {key}")


class DeliveryError(Exception):
    """An email provider failed to hand a message to its transport."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"Failed to send email via {provider}: {message}")


class RecordNotFoundError(LookupError):
    """A store has no record with the requested id."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"OTP record {record_id} not found")
