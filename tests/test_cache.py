"""Tests for the cache stores and single-flight coalescing."""

import threading
import time

import pytest

from algoland_backend.cache import MISSING, AgedStore, SingleFlight, TTLStore


class TestTTLStore:
    def test_entries_expire_after_ttl(self, clock):
        store = TTLStore(ttl=60, timer=clock)
        store.set("a", 1)

        clock.advance(59)
        assert store.get("a") == 1
        clock.advance(2)
        assert store.get("a") is MISSING

    def test_per_entry_ttl_override(self, clock):
        store = TTLStore(ttl=3600, timer=clock)
        store.set("negative", None, ttl=60)

        assert store.get("negative") is None
        assert "negative" in store
        clock.advance(61)
        assert "negative" not in store

    def test_delete_and_clear(self, clock):
        store = TTLStore(ttl=60, timer=clock)
        store.set("a", 1)
        store.set("b", 2)

        store.delete("a")
        assert store.get("a", default="gone") == "gone"
        store.clear()
        assert len(store) == 0


class TestAgedStore:
    def test_fresh_until_max_age(self, clock):
        store = AgedStore(max_age=300, clock=clock)
        store.set("k", {"count": 1})

        clock.advance(300)
        assert store.fresh("k") == {"count": 1}
        clock.advance(1)
        assert store.fresh("k") is None

    def test_entry_survives_any_age(self, clock):
        store = AgedStore(max_age=300, clock=clock)
        store.set("k", "payload")

        clock.advance(86400)
        entry = store.entry("k")

        assert entry.payload == "payload"
        assert store.age(entry) == 86400

    def test_refresh_replaces_entry(self, clock):
        store = AgedStore(max_age=300, clock=clock)
        store.set("k", "old")
        clock.advance(10)
        store.set("k", "new")

        assert store.entry("k").payload == "new"
        assert store.age(store.entry("k")) == 0


class TestSingleFlight:
    def test_concurrent_callers_share_one_fetch(self):
        flight = SingleFlight()
        calls = []
        started = threading.Event()
        release = threading.Event()

        def fetch():
            calls.append(1)
            started.set()
            release.wait(5)
            return "value"

        results = []
        leader = threading.Thread(target=lambda: results.append(flight.do("key", fetch)))
        leader.start()
        started.wait(5)
        followers = [threading.Thread(target=lambda: results.append(flight.do("key", fetch))) for _ in range(3)]
        for t in followers:
            t.start()
        assert flight.in_flight("key")
        time.sleep(0.2)
        release.set()
        for t in [leader] + followers:
            t.join(5)

        assert calls == [1]
        assert results == ["value"] * 4
        assert not flight.in_flight("key")

    def test_failure_is_not_cached(self):
        flight = SingleFlight()

        def boom():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            flight.do("key", boom)
        assert flight.do("key", lambda: "ok") == "ok"
