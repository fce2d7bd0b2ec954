"""
Zero-Config Factory
===================
Builds a ready engine from whatever adapters the host supplies, filling the
rest with in-process defaults.
"""

import secrets
from typing import Optional

import structlog

from otp_core.otp.config import OTPConfig
from otp_core.otp.engine import SecureEmailOTP
from otp_core.providers.base import BaseEmailProvider
from otp_core.providers.local import ConsoleProvider
from otp_core.rate_limit.base import BaseRateLimiter
from otp_core.rate_limit.in_memory import InMemoryRateLimiter
from otp_core.storage.base import BaseOTPStore
from otp_core.storage.memory import InMemoryOTPStore

logger = structlog.get_logger(__name__)


def generate_secret() -> str:
    """64 hex characters from the OS CSPRNG."""
    return secrets.token_hex(32)


def create_secure_email_otp(
    store: Optional[BaseOTPStore] = None,
    provider: Optional[BaseEmailProvider] = None,
    rate_limiter: Optional[BaseRateLimiter] = None,
    secret: Optional[str] = None,
    config: Optional[OTPConfig] = None,
    demo_mode: bool = True,
) -> SecureEmailOTP:
    """
    Create an engine, defaulting every missing adapter.

    Defaults are process-local: an in-memory store and rate limiter and a
    console provider (disabled when ``demo_mode`` is False). A generated
    secret does not survive a restart, so codes issued before one cannot
    be verified after it.

    Args:
        store: Record store
        provider: Email provider
        rate_limiter: Issuance rate limiter
        secret: Server secret, at least 32 characters
        config: Engine options
        demo_mode: Whether the default console provider prints messages

    Returns:
        Configured SecureEmailOTP
    """
    if secret is None:
        secret = generate_secret()
        logger.warning("Using a generated OTP secret; set one explicitly in production")

    return SecureEmailOTP(
        store=store or InMemoryOTPStore(),
        provider=provider or ConsoleProvider(enabled=demo_mode),
        rate_limiter=rate_limiter or InMemoryRateLimiter(),
        secret=secret,
        config=config,
    )


def create_demo_instance(config: Optional[OTPConfig] = None) -> SecureEmailOTP:
    """Fully in-memory engine that prints emails to stdout."""
    return create_secure_email_otp(config=config, demo_mode=True)
