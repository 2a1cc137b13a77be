import hashlib
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional
import time

from supportdesk.cache.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 32


def normalize_text(text: str) -> str:
    return " ".join(text.strip().split())


def fingerprint(prefix: str, content: str) -> str:
    """Fixed-length cache key for arbitrarily long content."""
    digest = hashlib.sha256(normalize_text(content).encode("utf-8"))
    return f"{prefix}:{digest.hexdigest()[:FINGERPRINT_LENGTH]}"


@dataclass
class RequestMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    avg_response_time: float = 0.0  # milliseconds
    cache_hits: int = 0
    cache_misses: int = 0

    def record_request(self):
        self.total_requests += 1

    def record_success(self, duration_ms: float):
        # Running mean over successful requests only
        prior = self.successful_requests
        self.avg_response_time = (
            (self.avg_response_time * prior + duration_ms) / (prior + 1)
        )
        self.successful_requests += 1

    def record_failure(self):
        self.failed_requests += 1


class CacheLayer:
    """Response and intent caches plus request metrics.

    Constructed once by the container and passed to whoever needs it. A cache
    miss is never an error; callers recompute.
    """

    def __init__(self,
                 response_ttl: float = 600,
                 intent_ttl: float = 1800,
                 max_size: int = 5000,
                 clock: Callable[[], float] = time.monotonic):
        self.response_cache = TTLCache(response_ttl, max_size, clock)
        self.intent_cache = TTLCache(intent_ttl, max_size, clock)
        self.request_metrics = RequestMetrics()

    async def get_response(self, content: str) -> Optional[Any]:
        key = fingerprint("response", content)
        cached = await self.response_cache.get(key)
        if cached is None:
            self.request_metrics.cache_misses += 1
            logger.info(f"Cache miss for response: {key}")
            return None
        self.request_metrics.cache_hits += 1
        logger.info(f"Cache hit for response: {key}")
        return cached

    async def put_response(self, content: str, result: Any) -> None:
        key = fingerprint("response", content)
        await self.response_cache.set(key, result)
        logger.info(f"Cached response for: {key}")

    async def get_intent(self, content: str) -> Optional[str]:
        return await self.intent_cache.get(fingerprint("intent", content))

    async def put_intent(self, content: str, label: str) -> None:
        await self.intent_cache.set(fingerprint("intent", content), label)

    async def cleanup_expired(self) -> int:
        removed = await self.response_cache.cleanup_expired()
        removed += await self.intent_cache.cleanup_expired()
        return removed

    def metrics(self) -> Dict[str, Any]:
        """Snapshot of the request counters and per-cache statistics."""
        snapshot = asdict(self.request_metrics)
        snapshot["cache_stats"] = {
            "response_cache": self.response_cache.stats(),
            "intent_cache": self.intent_cache.stats()
        }
        return snapshot
