"""
In-process cache service for API Aggregator.
Get-or-create caching of provider payloads with an absolute time-to-live.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    """Cached value with its absolute expiry on the cache clock."""
    value: Any
    expires_at: float


class CacheService:
    """
    Key/value cache with get-or-create semantics.

    Concurrent misses on the same key are not coalesced: each caller runs
    its own factory and the last non-None result wins.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._next_sweep_at = 0.0

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._store)

    def get(self, key: str) -> Optional[Any]:
        """Return the live cached value for key, or None."""
        entry = self._store.get(key)
        if entry is None:
            return None

        if self._clock() >= entry.expires_at:
            # Expired entries are dropped on access
            self._store.pop(key, None)
            logger.debug("Cache entry expired", extra={"key": key})
            return None

        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store value under key for ttl_seconds from now."""
        now = self._clock()
        # Keys nobody reads again would otherwise never be dropped
        if now >= self._next_sweep_at:
            self._purge_expired()
            self._next_sweep_at = now + self.ttl_seconds
        self._store[key] = CacheEntry(value=value, expires_at=now + self.ttl_seconds)

    async def get_or_create(self, key: str, factory: Callable[[], Awaitable[Optional[T]]]) -> Optional[T]:
        """
        Get a cached value or create it using the factory.

        Args:
            key: Cache key
            factory: Coroutine function producing the value on a miss

        Returns:
            The cached or freshly created value; None results are returned
            but never stored, so the next call retries the factory
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache hit", extra={"key": key})
            return cached

        logger.debug("Cache miss, fetching data", extra={"key": key})
        value = await factory()

        if value is not None:
            self.set(key, value)
            logger.debug("Cached value", extra={"key": key, "ttl": self.ttl_seconds})

        return value

    def remove(self, key: str) -> None:
        """Remove a value from the cache."""
        self._store.pop(key, None)
        logger.debug("Removed cache entry", extra={"key": key})

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._store.items() if now >= entry.expires_at]
        for key in expired:
            self._store.pop(key, None)
        if expired:
            logger.debug("Purged expired cache entries", extra={"count": len(expired)})


# Global cache service instance
cache_service = CacheService(ttl_seconds=settings.cache_ttl_seconds)
