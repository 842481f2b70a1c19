"""Key/value store for short-lived state (rate-limit counters, passcodes).

The in-memory store suits a single instance. Switch ``store_backend`` to
``redis`` to share state between instances.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as redis

from booking_sync.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """Async key/value store with per-key expiry."""

    async def connect(self) -> None:
        """Open connections, if any."""

    async def disconnect(self) -> None:
        """Close connections, if any."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value, or None when missing or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value that expires after ttl_seconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key; True when it existed."""
        pass

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Increment a counter; the expiry is set when the counter is created."""
        pass

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Seconds until expiry, or -2 when the key does not exist."""
        pass

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop expired keys; returns how many were removed."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass


class InMemoryStore(KeyValueStore):
    """Process-local store backed by a dict."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> Optional[tuple[str, float]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def incr(self, key: str, ttl_seconds: int) -> int:
        entry = self._live(key)
        if entry is None:
            self._data[key] = ("1", self._clock() + ttl_seconds)
            return 1
        count = int(entry[0]) + 1
        self._data[key] = (str(count), entry[1])
        return count

    async def ttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        return max(0, int(entry[1] - self._clock()))

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        return len(expired)

    async def ping(self) -> bool:
        return True


class RedisStore(KeyValueStore):
    """Redis-backed store shared by every instance."""

    def __init__(self, redis_url: str, key_prefix: str = "bsync:"):
        """Initialize Redis store."""
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        self._client = await redis.from_url(
            self.redis_url, encoding="utf-8", decode_responses=True
        )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()

    def _require_client(self) -> redis.Redis:
        if not self._client:
            raise RuntimeError("Redis client not connected")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        return await self._require_client().get(self.key_prefix + key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._require_client().set(self.key_prefix + key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> bool:
        return bool(await self._require_client().delete(self.key_prefix + key))

    async def incr(self, key: str, ttl_seconds: int) -> int:
        client = self._require_client()
        full_key = self.key_prefix + key
        count = await client.incr(full_key)
        if count == 1:
            await client.expire(full_key, ttl_seconds)
        return int(count)

    async def ttl(self, key: str) -> int:
        return int(await self._require_client().ttl(self.key_prefix + key))

    async def purge_expired(self) -> int:
        # Redis expires keys on its own
        return 0

    async def ping(self) -> bool:
        try:
            return bool(await self._require_client().ping())
        except Exception as e:
            logger.error("redis_ping_failed", error=str(e))
            return False


def create_store(backend: str, redis_url: str) -> KeyValueStore:
    """Build the configured store implementation."""
    if backend == "redis":
        return RedisStore(redis_url)
    if backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unknown store backend: {backend}")
