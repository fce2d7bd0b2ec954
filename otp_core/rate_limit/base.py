"""
Rate Limiter Contract
=====================
Interface every issuance rate limiter implements.
"""

from abc import ABC, abstractmethod

from .models import RateLimitInfo


class BaseRateLimiter(ABC):
    """
    Counter keyed by identity answering "may a new code be requested now?".

    ``check_limit`` never mutates and serves as a cheap pre-check;
    ``increment`` records one issuance and returns the new count.
    """

    name: str = "base"

    @abstractmethod
    async def check_limit(self, key: str, limit: int, window_seconds: float) -> bool:
        """Return True while fewer than ``limit`` issuances sit in the window."""

    @abstractmethod
    async def increment(self, key: str, window_seconds: float) -> int:
        """
        Record one issuance, opening a new window if the last one elapsed.

        Returns the count in the window after this issuance. The read and
        the increment are one atomic step, so callers enforce the quota on
        this value.
        """

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all issuances for ``key``."""

    @abstractmethod
    async def get_info(self, key: str, limit: int, window_seconds: float) -> RateLimitInfo:
        """Quota details for ``key`` without mutating it."""

    async def ping(self) -> bool:
        """Read-only reachability check used by health checks."""
        return True

    async def close(self) -> None:
        """Release background resources."""
