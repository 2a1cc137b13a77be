"""
Response and intent caching with request metrics.
"""

from supportdesk.cache.ttl_cache import TTLCache
from supportdesk.cache.cache_layer import CacheLayer, RequestMetrics, fingerprint

__all__ = [
    "TTLCache",
    "CacheLayer",
    "RequestMetrics",
    "fingerprint"
]
