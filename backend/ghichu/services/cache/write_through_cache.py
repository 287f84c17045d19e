"""
Write-Through Cache

Process-local cache in front of the metadata and content collections.
Entries are authoritative only within a freshness window; after that a read
is a miss and the backing store is consulted again. Writers put into the
cache synchronously with their backing write.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Generic, Optional, TypeVar

from ...constants import get_current_timestamp

V = TypeVar("V")


@dataclass
class _CacheItem(Generic[V]):
    value: V
    inserted_at: datetime


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class WriteThroughCache(Generic[V]):
    """
    Freshness-bounded key/value cache.

    Args:
        freshness_window: How long an inserted value may be served
        max_entries: Optional bound; on overflow the oldest insert is evicted
        clock: Source of the current time
    """

    def __init__(
        self,
        freshness_window: timedelta,
        max_entries: Optional[int] = None,
        clock: Callable[[], datetime] = get_current_timestamp,
    ):
        if freshness_window <= timedelta(0):
            raise ValueError("freshness_window must be positive")

        self.freshness_window = freshness_window
        self.max_entries = max_entries or None
        self.clock = clock
        self.stats = CacheStats()
        self._items: Dict[str, _CacheItem[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        """Return the cached value if still fresh, else None (a miss)."""
        now = self.clock()
        with self._lock:
            item = self._items.get(key)
            if item is None or now - item.inserted_at >= self.freshness_window:
                # Stale items stay until the next put overwrites them
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return item.value

    def put(self, key: str, value: V) -> None:
        now = self.clock()
        with self._lock:
            self._items[key] = _CacheItem(value=value, inserted_at=now)
            if self.max_entries is not None and len(self._items) > self.max_entries:
                self._evict_oldest()

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def _evict_oldest(self) -> None:
        oldest_key = min(self._items, key=lambda k: self._items[k].inserted_at)
        del self._items[oldest_key]
        self.stats.evictions += 1
