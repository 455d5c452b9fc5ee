"""Key-value cache backends shared by the fallback layer and the orchestrator.

Values are JSON documents. Both backends expose the same async surface:
``get``, ``set(key, value, ttl_ms)``, ``delete_prefix`` and ``clear``.
Backend failures propagate; callers decide whether a failure is fatal.
"""

import json
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis

from phone_sync.models.config import CacheConfig


class Cache(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...

    async def clear(self) -> None: ...


class MemoryCache:
    """
    In-process cache with per-entry TTL.

    Entries are stored as serialized JSON so callers get the same copy
    semantics as with Redis. Expired entries are dropped on read.
    """

    def __init__(self, now: Callable[[], float] = time.monotonic):
        self._now = now
        self._entries: Dict[str, Tuple[Optional[float], str]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at is not None and self._now() >= expires_at:
            del self._entries[key]
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        expires_at = self._now() + ttl_ms / 1000 if ttl_ms else None
        self._entries[key] = (expires_at, json.dumps(value, default=str))

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """Redis-backed cache. All keys live under ``key_prefix``."""

    def __init__(self, client: "redis.Redis", key_prefix: str = "phone-sync:"):
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "phone-sync:") -> "RedisCache":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=2,
            retry_on_timeout=True,
        )
        return cls(client, key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        data = await self.client.get(self._key(key))
        if data is None:
            return None
        return json.loads(data)

    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        payload = json.dumps(value, default=str)
        if ttl_ms:
            await self.client.set(self._key(key), payload, px=int(ttl_ms))
        else:
            await self.client.set(self._key(key), payload)

    async def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        async for key in self.client.scan_iter(match=f"{self._key(prefix)}*"):
            deleted += await self.client.delete(key)
        return deleted

    async def clear(self) -> None:
        await self.delete_prefix("")

    async def aclose(self) -> None:
        await self.client.aclose()


def create_cache(config: CacheConfig):
    """Build the configured cache backend."""
    if config.backend == "redis":
        return RedisCache.from_url(config.redis_url, config.key_prefix)
    return MemoryCache()
