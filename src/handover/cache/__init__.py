"""Caches shielding the alternate naming systems from redundant lookups.

Brief:
    Exposes LRUTTLCache and the ABSENT sentinel used to record confirmed
    "no data" results.
"""

from .lru_ttl import ABSENT, CACHE_SIZE, CACHE_TTL, LRUTTLCache

__all__ = ["ABSENT", "CACHE_SIZE", "CACHE_TTL", "LRUTTLCache"]
