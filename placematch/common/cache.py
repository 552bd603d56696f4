"""In-memory result cache with TTL eviction."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Hashable


class TtlCache:
    """Entries expire ``ttl_seconds`` after they were set.

    Expired entries are evicted lazily on ``get`` and eagerly when the cache
    is full; beyond that the oldest entry is dropped.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self.lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return default
            stored_at, value = entry
            if self.clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return default
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self.lock:
            now = self.clock()
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict(now)
            self._entries[key] = (now, value)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def _evict(self, now: float) -> None:
        expired = [key for key, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda key: self._entries[key][0])
            del self._entries[oldest]
