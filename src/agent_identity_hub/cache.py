"""ServiceCache: explicit per-service, write-through cache.

Each service owns its own cache instance; nothing is shared between
service instances. The cache is best-effort: a miss always falls through
to the identity store, never to an error. Entries may carry a TTL, after
which they are treated as misses and evicted.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

_V = TypeVar("_V")


class ServiceCache(Generic[_V]):
    """Thread-safe keyed cache with optional TTL and size bound.

    Parameters
    ----------
    name:
        Label used in log messages.
    ttl_seconds:
        Lifetime of an entry. ``None`` keeps entries until evicted.
    max_entries:
        When the cache is full the oldest entry is dropped on insert.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float | None = None,
        max_entries: int = 10_000,
    ) -> None:
        self._name = name
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._entries: dict[str, tuple[_V, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> _V | None:
        """Return the cached value for *key*, or ``None`` on a miss or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("%s cache miss: %s", self._name, key)
                return None
            value, expires_at = entry
            if expires_at is not None and time.monotonic() >= expires_at:
                del self._entries[key]
                logger.debug("%s cache expired: %s", self._name, key)
                return None
        logger.debug("%s cache hit: %s", self._name, key)
        return value

    def set(self, key: str, value: _V) -> None:
        """Insert or replace the entry for *key*."""
        expires_at = time.monotonic() + self._ttl if self._ttl is not None else None
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[key] = (value, expires_at)

    def evict(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["ServiceCache"]
