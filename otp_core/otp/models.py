"""
OTP Models
==========
Data models and enums for OTP issuance and verification.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from dataclasses import asdict, dataclass, field
from enum import Enum


class OTPChannel(str, Enum):
    """OTP delivery channels."""
    EMAIL = "email"


class OTPStatus(str, Enum):
    """Lifecycle state of a code attempt record."""
    ACTIVE = "active"
    USED = "used"
    LOCKED = "locked"
    EXPIRED = "expired"


REQUIRED_FIELDS = ("ip", "user_agent")
BINDING_FIELDS = ("ip", "user_agent", "device_id", "platform")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes coming back from a store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RequestMeta:
    """Request context captured at issuance and compared at verification."""
    ip: str
    user_agent: str
    device_id: Optional[str] = None
    platform: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.ip and self.user_agent)

    def canonical(self, reference: Optional["RequestMeta"] = None) -> Dict[str, Optional[str]]:
        """
        Sorted mapping of the fields strict binding compares.

        Optional fields are included when set here, or, given a
        ``reference`` snapshot, exactly when the reference has them set.
        Browser and OS are kept for audit only and never bound.
        """
        source = reference or self
        view: Dict[str, Optional[str]] = {}
        for name in BINDING_FIELDS:
            if name in REQUIRED_FIELDS or getattr(source, name) is not None:
                view[name] = getattr(self, name)
        return dict(sorted(view.items()))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestMeta":
        return cls(
            ip=data.get("ip", ""),
            user_agent=data.get("user_agent", ""),
            device_id=data.get("device_id"),
            platform=data.get("platform"),
            browser=data.get("browser"),
            os=data.get("os"),
        )


@dataclass
class OTPRecord:
    """One issued code attempt. Never holds the plaintext code."""
    destination: str
    context: str
    session_id: str
    code_hash: str
    tag: str
    expires_at: datetime
    max_attempts: int
    request_meta: RequestMeta
    meta_fingerprint: str
    channel: OTPChannel = OTPChannel.EMAIL
    attempts: int = 0
    is_used: bool = False
    is_locked: bool = False
    id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_expired(self) -> bool:
        return utcnow() > ensure_aware(self.expires_at)

    @property
    def is_open(self) -> bool:
        """Not yet settled. Expiry alone does not settle a record."""
        return not (self.is_used or self.is_locked)

    @property
    def is_active(self) -> bool:
        return self.is_open and not self.is_expired

    @property
    def status(self) -> OTPStatus:
        if self.is_used:
            return OTPStatus.USED
        if self.is_locked:
            return OTPStatus.LOCKED
        if self.is_expired:
            return OTPStatus.EXPIRED
        return OTPStatus.ACTIVE

    @property
    def key(self) -> str:
        """Identity the session-level uniqueness constraint applies to."""
        return f"{self.channel.value}:{self.context}:{self.session_id}"


@dataclass(frozen=True)
class IssueResult:
    """Returned by ``issue()``."""
    session_id: str
    expires_at: datetime
    resent: bool
    code: Optional[str] = None  # Only set when OTPConfig.expose_code is on


@dataclass(frozen=True)
class VerifyResult:
    """Returned by a successful ``verify()``."""
    verified: bool
    session_id: str
    destination: str
    context: str
    channel: OTPChannel = OTPChannel.EMAIL
