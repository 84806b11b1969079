"""Per-market mutual exclusion for ledger writes."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class MarketLocks:
    """Hands out one lock per market so writes to different markets never contend."""

    def __init__(self, *, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._locks: dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.lock_for(key)
        if not lock.acquire(timeout=self.timeout):
            raise TimeoutError(f"Timed out waiting for ledger lock on {key!r}")
        try:
            yield
        finally:
            lock.release()

    def discard(self, key: Hashable) -> None:
        """Forget the lock for ``key`` once no further writes to it can succeed.

        Threads already waiting on the old lock still serialise among themselves;
        a later caller gets a fresh lock. Only discard keys whose state is terminal.
        """

        with self._guard:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
