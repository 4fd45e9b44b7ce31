"""
Entrant Counter
===============
Total participants: the registry's global userCounter is the fast path;
full enumeration of opted-in accounts is the authoritative fallback when the
counter is missing, invalid, or lower than a recently observed count
(indexer replica lag).
"""

import time

from loguru import logger

from algoland_backend.cache import SingleFlight
from algoland_backend.errors import IndexerError
from algoland_backend.helpers import normalise_address, utc_now_iso

CACHE_KEY = "entrants"


class EntrantCounter:
    def __init__(self, indexer, registry, store, regression_window, flight=None):
        self.indexer = indexer
        self.registry = registry
        self.store = store
        self.regression_window = regression_window
        self.flight = flight or SingleFlight()

    def resolve(self):
        """Current EntrantSnapshot dict (possibly stale)."""
        return dict(self.flight.do(CACHE_KEY, self._resolve))

    def _floor(self, entry):
        """Cached count still young enough to guard against counter regression."""
        if entry is None or self.store.age(entry) > self.regression_window:
            return None
        return entry.payload["count"]

    def _resolve(self):
        cached = self.store.entry(CACHE_KEY)
        snapshot = self._from_counter(self._floor(cached))
        if snapshot is not None:
            return snapshot
        try:
            return self._from_enumeration()
        except IndexerError as exc:
            if cached is not None:
                logger.warning(f"[Entrants] Enumeration failed, serving cached count: {exc}")
                return {**cached.payload, "stale": True}
            raise

    def _from_counter(self, floor):
        start = time.perf_counter()
        try:
            counter = self.registry.user_counter()
        except IndexerError as exc:
            logger.warning(f"[Entrants] Failed to read global counter: {exc}")
            return None
        if counter is None or counter < 0:
            logger.warning(f"[Entrants] Global counter missing or invalid: {counter!r}")
            return None
        if floor is not None and counter < floor:
            logger.warning(
                f"[Entrants] Global counter {counter} below cached {floor}, falling back to enumeration"
            )
            return None
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        snapshot = self._snapshot(counter, "counter", {"durationMs": duration_ms, "appId": self.registry.app_id})
        logger.info(f"[Entrants] Counter read from global state: {counter} ({duration_ms}ms)")
        return snapshot

    def _from_enumeration(self):
        start = time.perf_counter()
        accounts = set()
        page_count = 0
        path = f"/v2/applications/{self.registry.app_id}/accounts"
        for page in self.indexer.paginate(path, {"include-all": False}, items_key="accounts"):
            page_count += 1
            for account in page:
                address = normalise_address((account or {}).get("address"))
                if address:
                    accounts.add(address)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        snapshot = self._snapshot(len(accounts), "enumeration", {
            "durationMs": duration_ms,
            "pageCount": page_count,
            "uniqueAccounts": len(accounts),
        })
        logger.info(f"[Entrants] Enumerated {len(accounts):,} accounts over {page_count} pages ({duration_ms}ms)")
        return snapshot

    def _snapshot(self, count, method, meta):
        snapshot = {
            "count": count,
            "updatedAt": utc_now_iso(),
            "method": method,
            "source": self.indexer.base_url,
            "stale": False,
            "meta": meta,
        }
        self.store.set(CACHE_KEY, snapshot)
        return snapshot
