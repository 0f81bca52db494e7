"""
TTLCache - In-memory cache for retrieved secrets with per-entry expiry.

Features:
- Lazy expiry: an entry is checked (and evicted) on the first access after
  its TTL has passed; there is no background work unless a sweeper is
  attached
- Stale shadow: an expired entry is kept for an extra grace period so it can
  be served while the upstream circuit is open
- Optional LRU bound covering fresh and stale entries together; stale
  copies are evicted before fresh ones
- Synchronous, lock-protected operations that never suspend
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry. Times are on the cache's clock."""

    value: T
    expires_at: float
    stale_until: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def is_servable_stale(self, now: float) -> bool:
        return now < self.stale_until


@dataclass
class CacheStats:
    """Cache statistics."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    evictions: int = 0
    stale_size: int = 0


class TTLCache:
    """
    Key/value cache with per-entry TTL.

    Usage:
        cache = TTLCache(default_ttl=timedelta(seconds=60))

        value = cache.get(secret_id)
        if value is None:
            value = await fetch(secret_id)
            cache.set(secret_id, value)

    ``get`` never returns an entry once its TTL has passed. ``get_stale`` is
    the only read that ignores freshness and is meant for the degraded path
    taken when the upstream circuit is open.
    """

    def __init__(
        self,
        default_ttl: timedelta = timedelta(seconds=60),
        stale_ttl: timedelta = timedelta(0),
        max_entries: int = 0,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._default_ttl = default_ttl
        self._stale_ttl = stale_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._debug = debug

        self._store: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._stale: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._stale_hits = 0
        self._evictions = 0

    def get(self, key: str) -> Any | None:
        """Return the fresh value for ``key``, or None on a miss."""
        with self._lock:
            entry = self._lookup(key)
            if entry is None:
                self._misses += 1
                self._log(f"MISS: {key}")
                return None

            self._hits += 1
            self._store.move_to_end(key)
            self._log(f"HIT: {key}")
            return entry.value

    def has(self, key: str) -> bool:
        """Check for a fresh entry without touching hit/miss counters."""
        with self._lock:
            return self._lookup(key) is not None

    def set(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        """
        Store ``value`` under ``key``, replacing any existing entry.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live; the default TTL when omitted. A zero TTL
                expires the entry immediately.
        """
        ttl = self._default_ttl if ttl is None else ttl
        now = self._clock()
        expires_at = now + ttl.total_seconds()
        entry = CacheEntry(
            value=value,
            expires_at=expires_at,
            stale_until=expires_at + self._stale_ttl.total_seconds(),
        )

        with self._lock:
            self._stale.pop(key, None)
            self._drop_dead_stale(now)
            if key not in self._store:
                self._make_room(1)

            self._store[key] = entry
            self._store.move_to_end(key)
            self._log(f"SET: {key} (TTL: {ttl.total_seconds()}s)")

    def delete(self, key: str) -> bool:
        """Remove ``key``, including any stale copy. True if a fresh-store entry existed."""
        with self._lock:
            self._stale.pop(key, None)
            if key in self._store:
                del self._store[key]
                self._log(f"DELETE: {key}")
                return True
            return False

    def clear(self) -> None:
        """Drop every entry and reset the counters."""
        with self._lock:
            count = len(self._store)
            self._store.clear()
            self._stale.clear()
            self._hits = 0
            self._misses = 0
            self._stale_hits = 0
            self._evictions = 0
            self._log(f"CLEAR: {count} entries removed")

    def get_stale(self, key: str) -> Any | None:
        """
        Return the last known value for ``key`` regardless of its TTL.

        Entries past their stale grace period are gone for good. Only the
        breaker-open fallback should call this.
        """
        with self._lock:
            now = self._clock()
            entry = self._store.get(key)
            if entry is None:
                entry = self._stale.get(key)
                if entry is not None and not entry.is_servable_stale(now):
                    del self._stale[key]
                    entry = None
            elif entry.is_expired(now) and not entry.is_servable_stale(now):
                del self._store[key]
                entry = None

            if entry is None:
                return None

            self._stale_hits += 1
            self._log(f"STALE HIT: {key}")
            return entry.value

    def cleanup_expired(self) -> int:
        """Expire every fresh entry past its TTL. Returns how many were expired."""
        with self._lock:
            now = self._clock()
            expired = [k for k, v in self._store.items() if v.is_expired(now)]
            for key in expired:
                self._expire(key, self._store.pop(key))

            dead = self._drop_dead_stale(now)

            if expired or dead:
                self._log(
                    f"CLEANUP: {len(expired)} expired, {dead} stale entries dropped"
                )
            return len(expired)

    def size(self) -> int:
        """Number of entries in the fresh store, including unchecked expired ones."""
        return len(self._store)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._store),
            hits=self._hits,
            misses=self._misses,
            stale_hits=self._stale_hits,
            evictions=self._evictions,
            stale_size=len(self._stale),
        )

    def _lookup(self, key: str) -> CacheEntry[Any] | None:
        """Return the fresh entry for ``key``, expiring it first if needed. Caller holds the lock."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._store[key]
            self._expire(key, entry)
            self._log(f"EXPIRED: {key}")
            return None
        return entry

    def _expire(self, key: str, entry: CacheEntry[Any]) -> None:
        """Move an expired entry into the stale shadow if its grace period allows."""
        now = self._clock()
        self._drop_dead_stale(now)
        if not entry.is_servable_stale(now):
            return
        self._make_room(1)
        self._stale[key] = entry

    def _drop_dead_stale(self, now: float) -> int:
        dead = [k for k, v in self._stale.items() if not v.is_servable_stale(now)]
        for key in dead:
            del self._stale[key]
        return len(dead)

    def _make_room(self, needed: int) -> None:
        """Evict until ``needed`` more entries fit. Stale copies go first, then LRU fresh ones."""
        if not self._max_entries:
            return
        while self._stale or self._store:
            if len(self._store) + len(self._stale) + needed <= self._max_entries:
                return
            if self._stale:
                key, _ = self._stale.popitem(last=False)
                self._log(f"EVICT STALE: {key}")
            else:
                key, _ = self._store.popitem(last=False)
                self._log(f"EVICT: {key}")
            self._evictions += 1

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[TTLCache] {message}")
