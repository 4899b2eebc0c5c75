from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from common.utils import monotonic_ms

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    expires_at_ms: float


class TTLCache(Generic[V]):
    """Keyed cache with a fixed time-to-live per entry.

    Stale entries are evicted lazily when they are read. There is no size
    bound: keys are expected to be bounded by distinct caller identities.
    A non-positive TTL disables the cache entirely.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = monotonic_ms) -> None:
        self.ttl_ms = ttl_seconds * 1000
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.RLock()

    @property
    def enabled(self) -> bool:
        return self.ttl_ms > 0

    def get(self, key: str) -> V | None:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expires_at_ms:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: V) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at_ms=self._clock() + self.ttl_ms)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
