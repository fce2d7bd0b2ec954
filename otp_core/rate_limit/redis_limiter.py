"""
Redis Rate Limiter
==================
Redis-backed fixed-window issuance counter shared across processes.
"""

import time
from typing import Optional

import structlog

from .base import BaseRateLimiter
from .models import RateLimitInfo

logger = structlog.get_logger(__name__)


class RedisRateLimiter(BaseRateLimiter):
    """
    Redis-backed fixed-window rate limiter.

    The window TTL is set only when the key is created (``SET NX PX``) and
    the increment runs in the same MULTI/EXEC transaction, so concurrent
    increments never extend or lose a window.
    """

    name = "redis"

    def __init__(self, redis_client, key_prefix: str = "ratelimit:"):
        """
        Args:
            redis_client: Async Redis client (redis.asyncio.Redis)
            key_prefix: Namespace for counter keys
        """
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _count(self, key: str) -> int:
        value = await self.redis.get(self._key(key))
        return int(value) if value is not None else 0

    async def check_limit(self, key: str, limit: int, window_seconds: float) -> bool:
        return await self._count(key) < limit

    async def increment(self, key: str, window_seconds: float) -> int:
        redis_key = self._key(key)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(redis_key, 0, px=int(window_seconds * 1000), nx=True)
            pipe.incr(redis_key)
            _, count = await pipe.execute()
        return int(count)

    async def reset(self, key: str) -> None:
        await self.redis.delete(self._key(key))

    async def get_info(self, key: str, limit: int, window_seconds: float) -> RateLimitInfo:
        now = time.time()
        count = await self._count(key)
        ttl_ms: Optional[int] = await self.redis.pttl(self._key(key))
        remaining_window = ttl_ms / 1000 if ttl_ms and ttl_ms > 0 else window_seconds
        reset_at = now + remaining_window

        allowed = count < limit
        return RateLimitInfo(
            allowed=allowed,
            remaining=max(limit - count, 0),
            limit=limit,
            reset_at=int(reset_at),
            retry_after=None if allowed else max(int(remaining_window), 1),
        )

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.error("Rate limiter ping failed", error=str(e))
            return False
