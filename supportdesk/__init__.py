"""
Omnichannel Support Resolver

Resilience and state layer for automated customer support: fallback-aware
ticket storage, vector retrieval with local failover, response/intent caching
and per-channel conversation state machines.
"""

__version__ = "1.0.0"
