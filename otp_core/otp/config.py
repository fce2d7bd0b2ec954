"""
OTP Configuration
=================
Option set for the issuance/verification engine.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from otp_core.errors import OTPError, OTPErrorCode
from .events import EventHandlers
from .hashing import MAX_CODE_LENGTH, MIN_CODE_LENGTH

DEFAULT_SENDER_NAME = "Your Company"
DEFAULT_SENDER_EMAIL = "support@yourcompany.com"


@dataclass
class RateLimitConfig:
    """Issuance quota per destination."""
    max_per_window: int = 3
    window_seconds: float = 15 * 60  # 15 minutes


@dataclass
class EmailTemplate:
    """
    Message template. Unset parts fall back to the built-in defaults.

    Placeholders: {{otp}}, {{email}}, {{context}}, {{expires_in}},
    {{company_name}}, {{support_email}}.
    """
    subject: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None


@dataclass
class OTPConfig:
    """Configuration for OTP issuance and verification."""
    code_length: int = 6
    expiry_seconds: float = 120  # 2 minutes
    max_attempts: int = 5
    strict_mode: bool = True
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    template: EmailTemplate = field(default_factory=lambda: EmailTemplate(
        sender_name=DEFAULT_SENDER_NAME,
        sender_email=DEFAULT_SENDER_EMAIL,
    ))
    events: EventHandlers = field(default_factory=EventHandlers)
    send_timeout_seconds: float = 10.0
    settled_retention_seconds: float = 24 * 60 * 60  # Used/locked rows kept a day
    expose_code: bool = False  # Development only: return the code from issue()

    def validate(self) -> "OTPConfig":
        """Raise OTPError(INVALID_CONFIG) for out-of-range values."""
        problems = []
        if not MIN_CODE_LENGTH <= self.code_length <= MAX_CODE_LENGTH:
            problems.append(
                f"code_length must be between {MIN_CODE_LENGTH} and {MAX_CODE_LENGTH}"
            )
        if self.expiry_seconds <= 0:
            problems.append("expiry_seconds must be positive")
        if self.max_attempts < 1:
            problems.append("max_attempts must be at least 1")
        if self.rate_limit.max_per_window < 1:
            problems.append("rate_limit.max_per_window must be at least 1")
        if self.rate_limit.window_seconds <= 0:
            problems.append("rate_limit.window_seconds must be positive")
        if self.send_timeout_seconds <= 0:
            problems.append("send_timeout_seconds must be positive")

        if problems:
            raise OTPError(
                OTPErrorCode.INVALID_CONFIG,
                "; ".join(problems),
                details={"problems": problems},
            )
        return self

    @classmethod
    def from_env(cls, prefix: str = "OTP_") -> "OTPConfig":
        """Build a config from environment variables, falling back to defaults."""
        defaults = cls()

        def env(name: str, default):
            return os.environ.get(f"{prefix}{name}", default)

        return cls(
            code_length=int(env("CODE_LENGTH", defaults.code_length)),
            expiry_seconds=float(env("EXPIRY_SECONDS", defaults.expiry_seconds)),
            max_attempts=int(env("MAX_ATTEMPTS", defaults.max_attempts)),
            strict_mode=str(env("STRICT_MODE", "true")).lower() in ("1", "true", "yes", "on"),
            rate_limit=RateLimitConfig(
                max_per_window=int(env("RATE_LIMIT_MAX", defaults.rate_limit.max_per_window)),
                window_seconds=float(
                    env("RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit.window_seconds)
                ),
            ),
            template=EmailTemplate(
                sender_name=env("SENDER_NAME", DEFAULT_SENDER_NAME),
                sender_email=env("SENDER_EMAIL", DEFAULT_SENDER_EMAIL),
            ),
            send_timeout_seconds=float(
                env("SEND_TIMEOUT_SECONDS", defaults.send_timeout_seconds)
            ),
        )
