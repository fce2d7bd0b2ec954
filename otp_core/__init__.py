"""
OTP Core Library
================
Email one-time-password issuance and verification with pluggable
storage, rate limiting and delivery.
"""

__version__ = "1.0.0"

# Errors
from otp_core.errors import (
    OTPError,
    OTPErrorCode,
    DuplicateKeyError,
    DeliveryError,
    RecordNotFoundError,
)

# Logging
from otp_core.logging import configure_logging, mask_destination

# OTP
from otp_core.otp import (
    SecureEmailOTP,
    OTPConfig,
    RateLimitConfig,
    EmailTemplate,
    EventHandlers,
    OTPEvent,
    OTPEventType,
    OTPChannel,
    OTPStatus,
    OTPRecord,
    RequestMeta,
    IssueResult,
    VerifyResult,
    CodeGenerator,
)

# Storage
from otp_core.storage import (
    BaseOTPStore,
    InMemoryOTPStore,
    SQLAlchemyOTPStore,
)

# Rate Limiting
from otp_core.rate_limit import (
    BaseRateLimiter,
    InMemoryRateLimiter,
    RedisRateLimiter,
    RateLimitInfo,
)

# Providers
from otp_core.providers import (
    BaseEmailProvider,
    EmailMessage,
    ConsoleProvider,
    CallbackProvider,
    BrevoProvider,
    PostmarkProvider,
    MailgunProvider,
    SendGridProvider,
    SMTPProvider,
)

# Health
from otp_core.health import HealthReport, HealthStatus

# Factory
from otp_core.factory import create_secure_email_otp, create_demo_instance

__all__ = [
    # Errors
    "OTPError",
    "OTPErrorCode",
    "DuplicateKeyError",
    "DeliveryError",
    "RecordNotFoundError",
    # Logging
    "configure_logging",
    "mask_destination",
    # OTP
    "SecureEmailOTP",
    "OTPConfig",
    "RateLimitConfig",
    "EmailTemplate",
    "EventHandlers",
    "OTPEvent",
    "OTPEventType",
    "OTPChannel",
    "OTPStatus",
    "OTPRecord",
    "RequestMeta",
    "IssueResult",
    "VerifyResult",
    "CodeGenerator",
    # Storage
    "BaseOTPStore",
    "InMemoryOTPStore",
    "SQLAlchemyOTPStore",
    # Rate Limiting
    "BaseRateLimiter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "RateLimitInfo",
    # Providers
    "BaseEmailProvider",
    "EmailMessage",
    "ConsoleProvider",
    "CallbackProvider",
    "BrevoProvider",
    "PostmarkProvider",
    "MailgunProvider",
    "SendGridProvider",
    "SMTPProvider",
    # Health
    "HealthReport",
    "HealthStatus",
    # Factory
    "create_secure_email_otp",
    "create_demo_instance",
]
