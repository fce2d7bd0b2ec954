"""
In-Memory Rate Limiter
======================
Fixed-window issuance counter for development, tests and single-process hosts.
"""

import threading
import time
from typing import Callable, Dict, Optional

import structlog

from .base import BaseRateLimiter
from .models import RateLimitInfo, RateWindow

logger = structlog.get_logger(__name__)


class InMemoryRateLimiter(BaseRateLimiter):
    """
    In-memory fixed-window rate limiter.

    A window opens on the first issuance for a key and lasts
    ``window_seconds``. The counter map is guarded by a lock so threads
    and event loops can share one instance. A daemon sweeper thread drops
    elapsed windows; it never keeps the interpreter alive.

    Use RedisRateLimiter when several processes share a quota.
    """

    name = "memory"

    def __init__(
        self,
        sweep_interval: Optional[float] = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            sweep_interval: Seconds between sweeps, None disables the sweeper
            clock: Time source returning Unix seconds
        """
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

        if sweep_interval:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(sweep_interval,),
                name="otp-rate-limit-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def __enter__(self) -> "InMemoryRateLimiter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def _current(self, key: str, now: float) -> Optional[RateWindow]:
        """Live window for key. Caller holds the lock."""
        window = self._windows.get(key)
        if window is not None and now >= window.reset_at:
            del self._windows[key]
            return None
        return window

    async def check_limit(self, key: str, limit: int, window_seconds: float) -> bool:
        with self._lock:
            window = self._current(key, self._clock())
            return window is None or window.count < limit

    async def increment(self, key: str, window_seconds: float) -> int:
        with self._lock:
            now = self._clock()
            window = self._current(key, now)
            if window is None:
                window = RateWindow(count=1, reset_at=now + window_seconds)
                self._windows[key] = window
            else:
                window.count += 1
            return window.count

    async def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    async def get_info(self, key: str, limit: int, window_seconds: float) -> RateLimitInfo:
        with self._lock:
            now = self._clock()
            window = self._current(key, now)
            count = window.count if window else 0
            reset_at = window.reset_at if window else now + window_seconds

        allowed = count < limit
        return RateLimitInfo(
            allowed=allowed,
            remaining=max(limit - count, 0),
            limit=limit,
            reset_at=int(reset_at),
            retry_after=None if allowed else max(int(reset_at - now), 1),
        )

    def get_count(self, key: str) -> int:
        """Issuances recorded in the live window for key."""
        with self._lock:
            window = self._current(key, self._clock())
            return window.count if window else 0

    def sweep(self) -> int:
        """
        Remove elapsed windows.

        Returns:
            Number of keys removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, window in self._windows.items() if now >= window.reset_at]
            for key in expired:
                del self._windows[key]
        if expired:
            logger.debug("Rate limit windows swept", removed=len(expired))
        return len(expired)

    def _sweep_loop(self, interval: float) -> None:
        while not self._stopped.wait(interval):
            self.sweep()

    def stop(self) -> None:
        """Stop the sweeper thread."""
        self._stopped.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=1.0)
        self._sweeper = None

    async def close(self) -> None:
        self.stop()

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
