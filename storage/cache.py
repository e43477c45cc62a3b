"""
In-Memory TTL Cache

Memoizes logical market-data queries for a short time so repeated requests
never reach the fetch orchestrator. Entries are served verbatim (the same
object that was stored) until their TTL elapses:

    hit   if now - inserted_at <= ttl
    miss  otherwise (the expired entry is evicted)

Each entry carries its own TTL, so one cache can hold prices (30s), global
stats (120s) and short-lived synthetic placeholders side by side.

Usage:
    cache = TTLCache(default_ttl=30)
    key = make_cache_key("coins/markets", {"vs_currency": "usd", "page": 1})

    cached = cache.get(key)
    if cached is None:
        cached = await fetch()
        cache.set(key, cached, ttl=30)
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional

from core.logging import get_logger
from core.utils.time import Clock, system_clock

logger = get_logger(__name__)


def make_cache_key(endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Build the logical query signature: endpoint plus sorted parameters.

    Example:
        >>> make_cache_key("coins/markets", {"page": 1, "vs_currency": "usd"})
        'coins/markets?page=1&vs_currency=usd'
    """
    if not params:
        return endpoint
    query = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] is not None)
    return f"{endpoint}?{query}" if query else endpoint


@dataclass
class CacheEntry:
    payload: Any
    inserted_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.inserted_at <= self.ttl


class TTLCache:
    """
    Thread-safe TTL cache with per-entry expiry.

    Attributes:
        default_ttl: TTL in seconds used when `set` gets none
        clock: Zero-argument callable returning epoch seconds

    Example:
        >>> cache = TTLCache(default_ttl=30, clock=lambda: now)
        >>> cache.set("global", stats)
        >>> cache.get("global") is stats
        True
    """

    def __init__(self, default_ttl: float = 30.0, clock: Clock = system_clock):
        self.default_ttl = default_ttl
        self.clock = clock

        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the stored payload while fresh, else None."""
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if not entry.is_fresh(now):
                del self._entries[key]
                self._misses += 1
                logger.debug(f"Cache expired: {key}")
                return None

            self._hits += 1

        logger.debug(f"Cache hit: {key}")
        return entry.payload

    def set(self, key: Hashable, payload: Any, ttl: Optional[float] = None) -> None:
        """Store `payload` under `key` with `inserted_at = now`."""
        ttl = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(payload=payload, inserted_at=self.clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, key: Hashable) -> bool:
        """Drop one entry. Returns True if it existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cache cleared")

    def purge_expired(self) -> int:
        """Evict every expired entry; returns how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.is_fresh(now)
