"""
In-memory cache with per-entry TTL.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    """Cache entry with value and expiration."""
    value: Any
    expires_at: float  # on the cache's clock


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0


class TTLCache:
    """
    In-memory cache whose entries expire ``ttl_seconds`` after being set.

    Expired entries are never returned; they are dropped on access or by
    ``cleanup_expired``. When ``max_size`` is reached the oldest entry is
    evicted.
    """

    def __init__(self,
                 ttl_seconds: float,
                 max_size: int = 1000,
                 clock: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.ttl = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._stats = CacheStats()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        """Retrieve value from cache, returning None if expired or missing."""
        async with self._lock:
            entry = self._store.get(key)

            if entry is not None and self._clock() >= entry.expires_at:
                del self._store[key]
                entry = None

            if entry is None:
                self._stats.misses += 1
                return None

            self._stats.hits += 1
            return entry.value

    async def set(self, key: str, value: Any,
                  ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl
        expires_at = self._clock() + ttl

        async with self._lock:
            if len(self._store) >= self.max_size and key not in self._store:
                oldest_key = next(iter(self._store))
                del self._store[oldest_key]

            # Re-insert so that dict order stays oldest-first
            self._store.pop(key, None)
            self._store[key] = CacheEntry(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()

    async def cleanup_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self._clock()
            expired_keys = [
                key for key, entry in self._store.items()
                if now >= entry.expires_at
            ]

            for key in expired_keys:
                del self._store[key]

            return len(expired_keys)

    def size(self) -> int:
        return len(self._store)

    def stats(self) -> Dict[str, int]:
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "keys": len(self._store)
        }
