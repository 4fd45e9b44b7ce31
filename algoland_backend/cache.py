"""
Cache Layer
===========
In-process stores injected into each resolver:

- TTLStore: entries expire after a per-entry TTL (metadata, id lookups).
- AgedStore: keeps the last good payload with its timestamp; freshness is
  decided by the reader, failures never evict (holders, draws, snapshots).
- SingleFlight: concurrent misses on one key share a single upstream fetch.
"""

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any

from cachetools import LRUCache, TLRUCache

MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    payload: Any
    cached_at: float


class TTLStore:
    """Key/value store with a default TTL and optional per-entry override."""

    def __init__(self, ttl, maxsize=10000, timer=time.monotonic):
        self.ttl = ttl
        self._lock = threading.RLock()
        self._cache = TLRUCache(maxsize=maxsize, ttu=self._expires_at, timer=timer)

    @staticmethod
    def _expires_at(_key, value, now):
        ttl = value[1]
        return float("inf") if not ttl else now + ttl

    def get(self, key, default=MISSING):
        with self._lock:
            item = self._cache.get(key)
        return default if item is None else item[0]

    def set(self, key, value, ttl=None):
        with self._lock:
            self._cache[key] = (value, self.ttl if ttl is None else ttl)

    def delete(self, key):
        with self._lock:
            self._cache.pop(key, None)

    def clear(self):
        with self._lock:
            self._cache.clear()

    def __contains__(self, key):
        return self.get(key) is not MISSING

    def __len__(self):
        with self._lock:
            return len(self._cache)


class AgedStore:
    """Last-good-value store: entries are replaced on refresh, never expired."""

    def __init__(self, max_age, maxsize=10000, clock=time.time):
        self.max_age = max_age
        self.clock = clock
        self._lock = threading.RLock()
        self._cache = LRUCache(maxsize=maxsize)

    def entry(self, key):
        """Last stored entry regardless of age, or None."""
        with self._lock:
            return self._cache.get(key)

    def age(self, entry):
        return self.clock() - entry.cached_at

    def fresh(self, key, max_age=None):
        """Payload if younger than max_age (default: the store's), else None."""
        entry = self.entry(key)
        if entry is None:
            return None
        limit = self.max_age if max_age is None else max_age
        if self.age(entry) <= limit:
            return entry.payload
        return None

    def set(self, key, payload):
        entry = CacheEntry(payload=payload, cached_at=self.clock())
        with self._lock:
            self._cache[key] = entry
        return entry

    def clear(self):
        with self._lock:
            self._cache.clear()

    def __len__(self):
        with self._lock:
            return len(self._cache)


class SingleFlight:
    """Per-key in-flight map so one cold key triggers one upstream fetch."""

    def __init__(self):
        self._lock = threading.Lock()
        self._calls = {}

    def do(self, key, fn):
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if not leader:
            return future.result()

        try:
            result = fn()
        except Exception as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._calls.pop(key, None)

    def in_flight(self, key):
        with self._lock:
            return key in self._calls
