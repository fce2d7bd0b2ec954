"""
Shared fixtures for otp-core tests.
"""

from typing import List

import pytest

SECRET = "test-secret-key-that-is-long-enough-0123456789"
DESTINATION = "alice@example.com"


class FakeClock:
    """Manually advanced time source for rate limiter tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Outbox:
    """Collects messages handed to a CallbackProvider."""

    def __init__(self):
        self.messages: List = []

    def __call__(self, message) -> None:
        self.messages.append(message)

    @property
    def last(self):
        return self.messages[-1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def request_meta():
    from otp_core.otp.models import RequestMeta

    return RequestMeta(ip="203.0.113.7", user_agent="Mozilla/5.0 (X11; Linux x86_64)")


@pytest.fixture
def store():
    from otp_core.storage.memory import InMemoryOTPStore

    return InMemoryOTPStore()


@pytest.fixture
def limiter(clock):
    from otp_core.rate_limit.in_memory import InMemoryRateLimiter

    rate_limiter = InMemoryRateLimiter(sweep_interval=None, clock=clock)
    yield rate_limiter
    rate_limiter.stop()


@pytest.fixture
def make_engine(store, limiter, outbox):
    """Build an engine over the shared fixtures with config overrides."""
    from otp_core.otp.config import OTPConfig
    from otp_core.otp.engine import SecureEmailOTP
    from otp_core.providers.local import CallbackProvider

    def factory(provider=None, **overrides):
        overrides.setdefault("expose_code", True)
        return SecureEmailOTP(
            store=store,
            provider=provider or CallbackProvider(outbox),
            rate_limiter=limiter,
            secret=SECRET,
            config=OTPConfig(**overrides),
        )

    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()
