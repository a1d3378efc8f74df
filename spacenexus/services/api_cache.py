"""
API Cache - in-memory cache for upstream API responses.

While upstream services are healthy the cache is refreshed on every
successful call. When an upstream fails, the last good response is served
from `get_stale()` so the platform keeps working on slightly old data.

Expired entries are kept around for that fallback; `cleanup()` only evicts
entries older than STALE_GRACE x their TTL.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

STALE_GRACE = 10


class CacheTTL:
    """Default TTLs in seconds."""
    NEWS = 60           # fast-changing feeds
    DEFAULT = 300
    STOCKS = 600
    SLOW = 900
    VERY_SLOW = 1800    # regulatory documents and similar


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    stored_at: float


class ApiCache:
    """Thread-safe TTL cache with stale reads and hit/miss statistics."""

    def __init__(self, clock=time.time):
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None if missing or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None or self._clock() > entry.expires_at:
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def get_stale(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Cached value even if expired.

        Returns:
            {'value', 'is_stale', 'stored_at'} or None if the key was never set
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            return {
                'value': entry.value,
                'is_stale': self._clock() > entry.expires_at,
                'stored_at': entry.stored_at,
            }

    def set(self, key: str, value: Any, ttl_seconds: float = CacheTTL.DEFAULT) -> None:
        now = self._clock()
        with self._lock:
            self._store[key] = CacheEntry(value=value, expires_at=now + ttl_seconds, stored_at=now)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        """Drop all entries and reset statistics."""
        with self._lock:
            self._store.clear()
            self.hits = 0
            self.misses = 0

    def cleanup(self) -> int:
        """Evict entries older than STALE_GRACE x their TTL. Returns count removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            for key, entry in list(self._store.items()):
                ttl = entry.expires_at - entry.stored_at
                if now - entry.stored_at > ttl * STALE_GRACE:
                    del self._store[key]
                    removed += 1
            remaining = len(self._store)

        if removed:
            logger.debug(f"[ApiCache] Cleanup removed {removed} ancient entries, {remaining} remain")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            entries = [
                {
                    'key': key,
                    'is_stale': now > entry.expires_at,
                    'age_seconds': round(now - entry.stored_at, 3),
                }
                for key, entry in self._store.items()
            ]
            hits, misses = self.hits, self.misses

        total = hits + misses
        hit_rate = f"{(hits / total) * 100:.1f}%" if total else "N/A"
        return {
            'size': len(entries),
            'hits': hits,
            'misses': misses,
            'hit_rate': hit_rate,
            'entries': entries,
        }


# Singleton instance
_cache: Optional[ApiCache] = None


def get_api_cache() -> ApiCache:
    global _cache
    if _cache is None:
        _cache = ApiCache()
    return _cache
