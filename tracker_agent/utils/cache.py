"""
TTL-based in-memory cache

Owned by whoever creates it (the intent resolver keeps one for model
classifications) rather than living in module globals. Expired entries are
evicted lazily on lookup and in bulk by sweep(), which can be called before
each lookup or on a schedule.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class CacheConfig:
    """Cache configuration constants"""
    DEFAULT_TTL = 300  # 5 minutes in seconds
    MAX_ENTRIES = 1000

    # Enable/disable caching globally (useful for testing)
    ENABLED = True


class TTLCache:
    """Map of key -> (value, expiry timestamp)"""

    def __init__(
        self,
        ttl: float = CacheConfig.DEFAULT_TTL,
        max_entries: int = CacheConfig.MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when missing or expired"""
        if not CacheConfig.ENABLED:
            return None

        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            logger.debug(f"Cache MISS: {key}")
            return None

        value, expiry = entry
        if self._clock() >= expiry:
            del self._entries[key]
            self._stats["evictions"] += 1
            self._stats["misses"] += 1
            logger.debug(f"Cache EXPIRED: {key}")
            return None

        self._stats["hits"] += 1
        logger.debug(f"Cache HIT: {key} (expires in {int(expiry - self._clock())}s)")
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if not CacheConfig.ENABLED:
            return

        if len(self._entries) >= self.max_entries and key not in self._entries:
            self.sweep()
            if len(self._entries) >= self.max_entries:
                # Oldest insertion goes first
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                self._stats["evictions"] += 1

        self._entries[key] = (value, self._clock() + (self.ttl if ttl is None else ttl))
        logger.debug(f"Cache STORED: {key} (TTL: {self.ttl if ttl is None else ttl}s)")

    def sweep(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of expired entries removed
        """
        now = self._clock()
        expired_keys = [key for key, (_, expiry) in self._entries.items() if now >= expiry]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            self._stats["evictions"] += len(expired_keys)
            logger.info(f"Cleared {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def invalidate(self, key: Optional[str] = None) -> int:
        """Drop one key, or everything when key is None"""
        if key is None:
            count = len(self._entries)
            self._entries.clear()
            return count
        return 1 if self._entries.pop(key, None) is not None else 0

    def get_stats(self) -> dict:
        """Hit/miss counters and current size"""
        hits = self._stats["hits"]
        lookups = hits + self._stats["misses"]
        return {
            **self._stats,
            "hit_rate_percent": round(hits / lookups * 100, 2) if lookups else 0,
            "cache_size": len(self._entries),
        }
