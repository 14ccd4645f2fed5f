"""
Thread-safe in-memory cache with per-entry TTL.

Provides:
- String keys, arbitrary values
- Default TTL with per-entry override
- TTL enforcement on read (expired entries behave as absent)
- Whole-cache flush for scheduled refreshes

There is no size-based eviction: the number of keys is bounded by the
request parameters the addon accepts, not by memory pressure.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from constants import DEFAULT_CACHE_TTL

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached value with its absolute expiry on the cache clock."""
    value: Any
    expires_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryCache:
    """
    Thread-safe process-lifetime cache.

    Concurrent writers to the same key resolve as last write wins.

    Usage:
        cache = MemoryCache(default_ttl=3600)
        page = cache.get("catalog:discover:p1")
        if page is None:
            page = build_page()
            cache.set("catalog:discover:p1", page, ttl=1800)
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl: Lifetime in seconds for entries set without a ttl
            clock: Monotonic time source (injectable for tests)
        """
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0
        logger.info(f"Cache initialized with TTL: {self.default_ttl:.0f} seconds")

    def get(self, key: str) -> Optional[Any]:
        """
        Read entry from cache.

        Args:
            key: Cache key

        Returns:
            Cached value, or None if absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                logger.debug(f"Cache MISS for key: {key}")
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                logger.debug(f"Cache entry expired: {key}")
                return None

            self._hits += 1
            logger.debug(f"Cache HIT for key: {key}")
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to store
            ttl: Lifetime in seconds, defaults to the cache default
        """
        lifetime = float(ttl) if ttl else self.default_ttl
        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=self._clock() + lifetime,
                ttl=lifetime,
            )
            self._sets += 1
        logger.debug(f"Cache SET for key: {key} (ttl={lifetime:.0f}s)")

    def delete(self, key: str) -> bool:
        """
        Delete a specific cache entry.

        Returns:
            True if an entry was deleted
        """
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug(f"Cache DELETE for key: {key}")
        return removed

    def clear(self) -> int:
        """
        Remove all entries unconditionally.

        Returns:
            Number of entries removed
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cache FLUSHED ({count} entries)")
        return count

    def purge_expired(self) -> int:
        """Drop expired entries, returning how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def keys(self) -> List[str]:
        """Get all live cache keys."""
        with self._lock:
            now = self._clock()
            return sorted(k for k, e in self._entries.items() if not e.is_expired(now))

    def inspect(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Lifetime details of a live entry, without counting a hit or miss.

        Returns:
            {"key", "ttl", "expires_in"} in seconds, or None if absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or entry.is_expired(now):
                return None
            return {
                "key": key,
                "ttl": entry.ttl,
                "expires_in": round(entry.expires_at - now, 1),
            }

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self.keys())

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with cache stats
        """
        with self._lock:
            now = self._clock()
            live = sum(1 for e in self._entries.values() if not e.is_expired(now))
            return {
                "total_entries": live,
                "expired_entries": len(self._entries) - live,
                "hits": self._hits,
                "misses": self._misses,
                "sets": self._sets,
                "default_ttl": self.default_ttl,
            }
