"""Read-through cache for display reads; never consulted by settlement."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from typing import Any, TypeVar

T = TypeVar("T")


class ReadThroughCache:
    """TTL cache that loads on miss and is invalidated explicitly after writes."""

    def __init__(
        self,
        *,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get(self, key: Hashable, loader: Callable[[], T]) -> T:
        if self.ttl_seconds <= 0:
            return loader()

        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now - entry[0] < self.ttl_seconds:
                return entry[1]
            generation = self._generation

        value = loader()
        with self._lock:
            # An invalidation that raced the load means the value may predate the write.
            if generation == self._generation:
                self._entries[key] = (self._clock(), value)
        return value

    def invalidate(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every entry whose key matches ``predicate``; returns how many went."""

        with self._lock:
            self._generation += 1
            stale = [key for key in self._entries if predicate(key)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
