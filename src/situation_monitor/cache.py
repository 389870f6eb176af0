"""
In-memory dataset cache with per-entry TTL and lazy staleness.

Entries are never dropped because they are old; a stale entry is still
returned (flagged ``is_stale``) so callers can fall back to last-known data
when an upstream refresh fails.  When ``max_entries`` is positive the store
is bounded with least-recently-used eviction.

Env
---
CACHE_MAX_ENTRIES   (default: "0", unbounded)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, MutableMapping, Optional, TypeVar

import cachetools

from .logging_utils import get_logger

log = get_logger("cache")

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    value: T
    stored_at: float
    ttl: float

    def is_stale(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


@dataclass(frozen=True)
class CacheHit(Generic[T]):
    data: T
    is_stale: bool


class CacheStore:
    """Key -> value store with TTL staleness.

    The store owns no I/O and cannot fail: a missing key is ``None``.  Each
    read and write holds a lock for the duration of a single entry lookup or
    replacement, so readers never observe a half-written entry.

    Args:
        max_entries: Positive value enables LRU eviction at that size.
        clock: Monotonic seconds source; tests inject a fake.
    """

    def __init__(
        self,
        max_entries: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: MutableMapping[str, CacheEntry[Any]]
        if max_entries and max_entries > 0:
            self._entries = cachetools.LRUCache(maxsize=max_entries)
        else:
            self._entries = {}
        self.max_entries = max_entries
        self.stats: Dict[str, int] = {
            "hits": 0,
            "stale_hits": 0,
            "misses": 0,
            "sets": 0,
        }

    def get(self, key: str) -> Optional[CacheHit[Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats["misses"] += 1
                return None
            stale = entry.is_stale(self._clock())
            self.stats["stale_hits" if stale else "hits"] += 1
        log.debug("cache_get key=%s stale=%s", key, stale)
        return CacheHit(data=entry.value, is_stale=stale)

    def set(self, key: str, data: Any, ttl: float) -> None:
        entry = CacheEntry(key=key, value=data, stored_at=self._clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry
            self.stats["sets"] += 1
        log.debug("cache_set key=%s ttl=%.1f", key, ttl)

    def entry(self, key: str) -> Optional[CacheEntry[Any]]:
        """Raw entry (with ``stored_at``) without touching the stats."""
        with self._lock:
            return self._entries.get(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
