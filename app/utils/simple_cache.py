"""In-memory TTL cache with loader-driven refresh.

Used to keep runtime configuration (e.g. rate limit settings) in process
memory and reload it only once it goes stale. Thread-safe, with LRU eviction
and an injectable clock so expiry can be tested deterministically.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class CacheItem:
    """Container for cached values with expiration metadata."""

    value: Any
    expires_at: float


class SimpleTTLCache:
    """Thread-safe, in-memory TTL cache with LRU eviction.

    Attributes:
        ttl_seconds: Default time-to-live applied to entries.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int | None = 128,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._refreshes = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SimpleTTLCache(ttl_seconds={self._ttl}, max_entries={self._max_entries}, "
            f"size={len(self._store)}, hits={self._hits}, misses={self._misses})"
        )

    def get(self, key: str) -> Any | None:
        """Return a cached value, or None if absent or expired."""

        with self._lock:
            item = self._store.get(key)
            if item is None:
                self._misses += 1
                return None

            if self._is_expired(item):
                self._evict_single(key)
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key, "reason": "expired"})
                return None

            self._hits += 1
            self._store.move_to_end(key)
            return item.value

    def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        """Store a value, evicting expired and least recently used entries."""

        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._evict_expired_locked()
            self._store[key] = CacheItem(value=value, expires_at=self._clock() + ttl)
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()

    def get_or_refresh(
        self,
        key: str,
        loader: Callable[[], Any],
        *,
        ttl_seconds: float | None = None,
    ) -> Any:
        """Return the cached value for ``key``, calling ``loader`` when stale.

        The loader runs under the cache lock so concurrent callers never load
        the same key twice. If the loader raises, the exception propagates and
        nothing is cached.

        Args:
            key: Cache key.
            loader: Zero-argument callable producing a fresh value.
            ttl_seconds: Override of the default TTL for this key.

        Returns:
            The cached or freshly loaded value.
        """

        with self._lock:
            cached = self.get(key)
            if cached is not None:
                return cached

            value = loader()
            self._refreshes += 1
            self.set(key, value, ttl_seconds=ttl_seconds)
            logger.debug(
                "cache.refreshed",
                extra={"cache_key": key, "ttl_s": self._ttl if ttl_seconds is None else ttl_seconds},
            )
            return value

    def invalidate(self, key: str) -> bool:
        """Drop a single key. Returns True if it was present."""

        with self._lock:
            return self._store.pop(key, None) is not None

    def stats(self) -> dict[str, int | float | None]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "ttl_seconds": self._ttl,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "refreshes": self._refreshes,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        for key in [k for k, item in self._store.items() if item.expires_at <= now]:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            self._store.popitem(last=False)
            self._evictions += 1

    def _is_expired(self, item: CacheItem) -> bool:
        return self._clock() >= item.expires_at
