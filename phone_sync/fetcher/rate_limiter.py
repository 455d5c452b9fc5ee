"""Per-host request spacing."""

import asyncio
import time
from typing import Awaitable, Callable, Dict


class RateLimiter:
    """Minimum-interval rate limiter keyed by host.

    Every ``acquire`` for a host returns no earlier than ``min_interval``
    seconds after the previous one for that host returned, whether or not
    the previous request succeeded. Concurrent callers for the same host
    are serialized; different hosts do not wait on each other.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        now: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between consecutive requests to one host
            now: Clock function for time operations (default: time.monotonic)
            sleeper: Async sleep function (default: asyncio.sleep)
        """
        self.min_interval = min_interval
        self._now = now
        self._sleep = sleeper

        # Per-host time at which the last request was released
        self._last_request: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, host: str) -> asyncio.Lock:
        if host not in self._locks:
            self._locks[host] = asyncio.Lock()
        return self._locks[host]

    async def acquire(self, host: str) -> float:
        """Wait until a request to ``host`` is allowed.

        Args:
            host: Host identifier (usually the URL netloc)

        Returns:
            Seconds spent waiting
        """
        async with self._lock_for(host):
            wait = self.wait_time(host)
            if wait > 0:
                await self._sleep(wait)
            self._last_request[host] = self._now()
            return wait

    def wait_time(self, host: str) -> float:
        """Seconds a request to ``host`` would have to wait right now."""
        last = self._last_request.get(host)
        if last is None:
            return 0.0
        elapsed = self._now() - last
        return max(0.0, self.min_interval - elapsed)

    def reset(self, host: str) -> None:
        """Forget request history for a host (useful for testing)."""
        self._last_request.pop(host, None)
