"""Fixed-window rate limiting for customer-facing endpoints."""

from typing import Optional

from booking_sync.storage.kv_store import KeyValueStore


class RateLimiter:
    """Per-client fixed-window counter kept in a key/value store."""

    def __init__(
        self,
        store: KeyValueStore,
        max_requests: int = 10,
        window_seconds: int = 60,
    ):
        """Initialize rate limiter."""
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    @staticmethod
    def _key(client_id: str, action: str) -> str:
        return f"ratelimit:{action}:{client_id}"

    async def check_rate_limit(self, client_id: str, action: str) -> tuple[bool, Optional[int]]:
        """Count a request and check it against the window.

        Returns:
            (is_allowed, retry_after_seconds)
        """
        key = self._key(client_id, action)
        count = await self.store.incr(key, self.window_seconds)

        if count > self.max_requests:
            retry_after = await self.store.ttl(key)
            return False, retry_after if retry_after > 0 else self.window_seconds

        return True, None

    async def reset_limit(self, client_id: str, action: str) -> None:
        """Reset rate limit for a client action."""
        await self.store.delete(self._key(client_id, action))
