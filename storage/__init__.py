"""
Storage Package

Handles caching of market data.

Current implementation:
- In-memory TTL cache keyed by logical query (endpoint + params)

All state is process-local; a restart starts from an empty cache.
"""

from storage.cache import CacheEntry, TTLCache, make_cache_key

__all__ = ["CacheEntry", "TTLCache", "make_cache_key"]
