"""
In-process document cache with TTL expiry and FIFO eviction.

The cache sits in front of single-document reads. Firestore stays the source
of truth: entries expire after ``ttl_ms`` and every write path invalidates the
documents it touched once the write has completed.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog

from ..models.responses import CacheStats

logger = structlog.get_logger()


@dataclass
class CacheEntry:
    """Cached document with its insertion time in milliseconds."""
    value: Any
    inserted_at: float

    def is_expired(self, now: float, ttl_ms: int) -> bool:
        """Check if the entry is older than the TTL."""
        return now - self.inserted_at > ttl_ms


def cache_key(collection: str, document_id: str) -> str:
    """Build the cache key for a document."""
    return f"{collection}/{document_id}"


class DocumentCache:
    """
    Bounded TTL cache for normalized documents.

    Expiry is lazy: stale entries are dropped when ``get`` or ``get_stats``
    finds them. When full, ``set`` evicts the oldest inserted entry; reads
    never change eviction order.

    Not thread-safe. Safe for interleaved use from coroutines on one event
    loop since no method awaits.
    """

    def __init__(
        self,
        ttl_ms: int = 60000,
        max_size: int = 500,
        clock: Optional[Callable[[], float]] = None
    ):
        if ttl_ms < 0:
            raise ValueError("ttl_ms must be >= 0")
        if max_size < 1:
            raise ValueError("max_size must be >= 1")

        self.ttl_ms = ttl_ms
        self.max_size = max_size
        self._clock = clock or time.monotonic

        self._entries: Dict[str, CacheEntry] = {}

        # Statistics
        self.hit_count = 0
        self.miss_count = 0

    def _now(self) -> float:
        return self._clock() * 1000

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, collection: str, document_id: str) -> Optional[Any]:
        """Get a cached document, or None if absent or expired."""
        key = cache_key(collection, document_id)
        entry = self._entries.get(key)

        if entry is None:
            self.miss_count += 1
            return None

        if entry.is_expired(self._now(), self.ttl_ms):
            del self._entries[key]
            self.miss_count += 1
            logger.debug("Cache entry expired", key=key)
            return None

        self.hit_count += 1
        return entry.value

    def set(self, collection: str, document_id: str, value: Any) -> None:
        """Cache a document, evicting the oldest entry when full."""
        key = cache_key(collection, document_id)

        if len(self._entries) >= self.max_size:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            logger.debug("Cache entry evicted", key=oldest_key)

        self._entries[key] = CacheEntry(value=value, inserted_at=self._now())

    def invalidate(self, collection: str, document_id: str) -> None:
        """Drop a document from the cache if present."""
        self._entries.pop(cache_key(collection, document_id), None)

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        self._entries.clear()
        self.hit_count = 0
        self.miss_count = 0

    def get_stats(self) -> CacheStats:
        """Get cache statistics, purging expired entries on the way."""
        now = self._now()
        expired_keys = [
            key for key, entry in self._entries.items()
            if entry.is_expired(now, self.ttl_ms)
        ]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.debug("Purged expired cache entries", count=len(expired_keys))

        total_requests = self.hit_count + self.miss_count
        hit_ratio = self.hit_count / total_requests if total_requests > 0 else 0.0

        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            hit_count=self.hit_count,
            miss_count=self.miss_count,
            hit_ratio=hit_ratio
        )
