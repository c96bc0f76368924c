"""Client-side TTL cache.

This module provides a small in-memory cache with per-entry expiration. It
is injected wherever lookups are worth remembering for a while (family
descriptors in the counter, result sets in user search) instead of living
in a module-level dict.
"""

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from typing import Any

MISSING: Any = object()
"""Returned by ``TTLCache.get`` when a key is absent or expired."""

# Sentinel to cache "fetch returned None" without confusing it with MISSING
_NONE: object = object()


@dataclass
class CacheEntry:
    """A cached value with expiration time."""

    value: Any
    expires_at: float


@dataclass
class CacheStats:
    """Statistics for cache performance monitoring."""

    hits: int = 0
    misses: int = 0
    size: int = 0
    ttl_seconds: float = 0

    def as_dict(self) -> dict[str, float]:
        """Return stats as a dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": self.size,
            "ttl": self.ttl_seconds,
        }


@dataclass
class TTLCache:
    """
    In-memory cache with TTL expiration and a bounded number of entries.

    Thread/async safety:
    - ``get_or_fetch`` holds a per-key asyncio.Lock while fetching, so
      concurrent misses on one key fetch once and misses on different keys
      fetch in parallel
    - Uses threading.Lock for the entries and stats, never across an await
    - Locks are per-cache-instance (no global locking)

    Negative caching:
    - ``get_or_fetch`` caches a ``None`` result too, so a missing record is
      not looked up again until the entry expires

    Args:
        ttl_seconds: Default time-to-live for entries (0 = disabled)
        max_entries: Maximum number of entries; the oldest is evicted first
    """

    ttl_seconds: float = 60
    max_entries: int = 1024
    _enabled: bool = field(init=False, default=True)

    _entries: dict[Hashable, CacheEntry] = field(init=False, default_factory=dict)

    # Statistics
    _hits: int = field(init=False, default=0)
    _misses: int = field(init=False, default=0)

    # Locks for thread/async safety
    _fetch_locks: dict[Hashable, asyncio.Lock] = field(init=False, default_factory=dict)
    _sync_lock: threading.Lock = field(init=False, default_factory=threading.Lock)

    def __post_init__(self) -> None:
        """Initialize derived state after dataclass init."""
        if self.max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._enabled = self.ttl_seconds > 0

    def _is_expired(self, entry: CacheEntry) -> bool:
        """Check if a cache entry has expired."""
        return time.time() > entry.expires_at

    def _lookup(self, key: Hashable, count: bool = True) -> Any:
        """Return the live value for key or MISSING, updating stats. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is not None and not self._is_expired(entry):
            if count:
                self._hits += 1
            return None if entry.value is _NONE else entry.value
        if entry is not None:
            del self._entries[key]
        if count:
            self._misses += 1
        return MISSING

    def _store(self, key: Hashable, value: Any, ttl_seconds: float | None) -> None:
        """Insert an entry, evicting the oldest ones past max_entries. Caller holds the lock."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            value=_NONE if value is None else value,
            expires_at=time.time() + ttl,
        )
        while len(self._entries) > self.max_entries:
            del self._entries[next(iter(self._entries))]

    # -------------------------------------------------------------------------
    # Direct access
    # -------------------------------------------------------------------------

    def get(self, key: Hashable) -> Any:
        """
        Get a cached value.

        Returns:
            The value, or MISSING if absent, expired, or caching is disabled
        """
        if not self._enabled:
            return MISSING
        with self._sync_lock:
            return self._lookup(key)

    def set(self, key: Hashable, value: Any, ttl_seconds: float | None = None) -> None:
        """
        Cache a value.

        Args:
            key: Cache key
            value: Value to cache (None is allowed)
            ttl_seconds: Override the default TTL for this entry
        """
        if not self._enabled:
            return
        with self._sync_lock:
            self._store(key, value, ttl_seconds)

    # -------------------------------------------------------------------------
    # Read-through
    # -------------------------------------------------------------------------

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Get a value, fetching and caching it on a miss.

        Exceptions raised by fetch_fn propagate and nothing is cached.

        Args:
            key: Cache key
            fetch_fn: Async function producing the value
        """
        if not self._enabled:
            return await fetch_fn()

        with self._sync_lock:
            value = self._lookup(key)
            if value is not MISSING:
                return value
            lock = self._fetch_locks.setdefault(key, asyncio.Lock())

        # Only callers fetching the same key wait on each other
        async with lock:
            with self._sync_lock:
                value = self._lookup(key, count=False)
            if value is not MISSING:
                return value

            try:
                value = await fetch_fn()
                with self._sync_lock:
                    self._store(key, value, None)
            finally:
                with self._sync_lock:
                    if self._fetch_locks.get(key) is lock:
                        del self._fetch_locks[key]
            return value

    def get_or_fetch_sync(self, key: Hashable, fetch_fn: Callable[[], Any]) -> Any:
        """Synchronous variant of ``get_or_fetch``."""
        if not self._enabled:
            return fetch_fn()

        with self._sync_lock:
            value = self._lookup(key)
            if value is not MISSING:
                return value
            value = fetch_fn()
            self._store(key, value, None)
            return value

    # -------------------------------------------------------------------------
    # Cache management
    # -------------------------------------------------------------------------

    def invalidate(self, key: Hashable | None = None) -> None:
        """
        Invalidate one entry, or all entries when key is None.

        Thread-safe. Call this after writes that change cached data.
        """
        with self._sync_lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def get_stats(self) -> CacheStats:
        """
        Get cache performance statistics.

        Returns:
            CacheStats with hits, misses, size, and TTL
        """
        with self._sync_lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                ttl_seconds=self.ttl_seconds,
            )

    @property
    def enabled(self) -> bool:
        """Whether caching is enabled (TTL > 0)."""
        return self._enabled
