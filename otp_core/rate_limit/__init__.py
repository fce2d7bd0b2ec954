"""
Rate Limiting Module
====================
Per-identity issuance quotas with in-memory and Redis backends.
"""

from .models import RateLimitResult, RateLimitInfo, RateWindow
from .base import BaseRateLimiter
from .in_memory import InMemoryRateLimiter
from .redis_limiter import RedisRateLimiter

__all__ = [
    # Models
    "RateLimitResult",
    "RateLimitInfo",
    "RateWindow",
    # Limiters
    "BaseRateLimiter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
]
