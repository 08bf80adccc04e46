"""
Unit tests for filepicker.cache module.

Tests cover:
- TTLCache.get/set/has basics
- TTL expiry for get and has
- Access counting
- Eviction: expired first, then the least-read 30%
- Size bound after any sequence of sets
- Approximate memory bound
- CachePair independence
- CacheJanitor purging and the process-wide singleton
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from filepicker.cache import (
    CacheJanitor,
    CachePair,
    TTLCache,
    ensure_janitor,
    shutdown_janitor,
)
from filepicker.config import CacheConfig


class TestTTLCacheBasics:
    """Tests for get/set/has/clear/size."""

    def test_get_returns_none_for_missing_entry(self, clock):
        cache = TTLCache(timer=clock)
        assert cache.get("/nonexistent") is None
        assert cache.has("/nonexistent") is False

    def test_set_then_get(self, clock):
        cache = TTLCache(timer=clock)
        listing = ("a", "b")

        cache.set("/root", listing)

        assert cache.get("/root") == listing
        assert cache.has("/root") is True
        assert "/root" in cache

    def test_set_overwrites_existing_entry(self, clock):
        cache = TTLCache(timer=clock)
        cache.set("/root", ("old",))
        cache.set("/root", ("new",))

        assert cache.get("/root") == ("new",)
        assert cache.size() == 1

    def test_clear_and_size(self, clock):
        cache = TTLCache(timer=clock)
        cache.set("/a", ())
        cache.set("/b", ())
        assert cache.size() == 2
        assert len(cache) == 2

        cache.clear()

        assert cache.size() == 0
        assert cache.get("/a") is None

    def test_invalidate_only_affects_key(self, clock):
        cache = TTLCache(timer=clock)
        cache.set("/a", (1,))
        cache.set("/b", (2,))

        cache.invalidate("/a")
        cache.invalidate("/missing")

        assert cache.get("/a") is None
        assert cache.get("/b") == (2,)

    def test_max_entries_must_be_positive(self):
        with pytest.raises(ValueError):
            TTLCache(max_entries=0)

    def test_from_config(self, clock):
        config = CacheConfig(ttl_seconds=10, max_entries=7, max_memory_mb=1)
        cache = TTLCache.from_config(config, name="dirs", timer=clock)

        assert cache.ttl_seconds == 10
        assert cache.max_entries == 7
        assert cache.name == "dirs"


class TestTTLCacheExpiry:
    """Tests for TTL expiration."""

    def test_entry_live_until_ttl(self, clock):
        cache = TTLCache(ttl_seconds=300, timer=clock)
        cache.set("/root", ("x",))

        clock.advance(300)

        # Exactly at the TTL the entry is still live (strictly greater expires)
        assert cache.has("/root") is True
        assert cache.get("/root") == ("x",)

    def test_get_returns_none_after_ttl(self, clock):
        cache = TTLCache(ttl_seconds=300, timer=clock)
        cache.set("/root", ("x",))

        clock.advance(300.5)

        assert cache.get("/root") is None

    def test_has_agrees_with_get_after_ttl(self, clock):
        cache = TTLCache(ttl_seconds=5, timer=clock)
        cache.set("/root", ("x",))

        clock.advance(6)

        assert cache.has("/root") is False
        assert cache.get("/root") is None

    def test_expired_entry_removed_on_access(self, clock):
        cache = TTLCache(ttl_seconds=5, timer=clock)
        cache.set("/root", ("x",))
        clock.advance(6)

        cache.has("/root")

        assert cache.size() == 0

    def test_expired_entry_can_be_replaced(self, clock):
        cache = TTLCache(ttl_seconds=5, timer=clock)
        cache.set("/root", ("old",))
        clock.advance(6)

        cache.set("/root", ("new",))

        assert cache.get("/root") == ("new",)

    def test_purge_expired(self, clock):
        cache = TTLCache(ttl_seconds=5, timer=clock)
        cache.set("/old", ())
        clock.advance(4)
        cache.set("/young", ())
        clock.advance(2)

        removed = cache.purge_expired()

        assert removed == 1
        assert cache.size() == 1
        assert cache.has("/young")


class TestTTLCacheAccessCount:
    """Tests for access counting."""

    def test_get_increments_access_count(self, clock):
        cache = TTLCache(timer=clock)
        cache.set("/root", ())

        cache.get("/root")
        cache.get("/root")

        assert cache._store["/root"].access_count == 3

    def test_has_does_not_count_as_read(self, clock):
        cache = TTLCache(timer=clock)
        cache.set("/root", ())

        cache.has("/root")

        assert cache._store["/root"].access_count == 1

    def test_peek_does_not_count_as_read(self, clock):
        cache = TTLCache(ttl_seconds=10, timer=clock)
        cache.set("/root", ("a",))

        assert cache.peek("/root") == ("a",)
        assert cache._store["/root"].access_count == 1

        clock.advance(11)
        assert cache.peek("/root") is None
        assert cache.size() == 0


class TestTTLCacheEviction:
    """Tests for the eviction policy."""

    def test_size_bounded_after_many_sets(self, clock):
        cache = TTLCache(max_entries=100, timer=clock)

        for i in range(1000):
            cache.set(f"/dir{i}", (i,))
            assert cache.size() <= 100

    def test_size_bounded_for_tiny_cache(self, clock):
        cache = TTLCache(max_entries=2, timer=clock)

        for i in range(10):
            cache.set(f"/dir{i}", ())
            assert cache.size() <= 2

    def test_drops_least_read_thirty_percent(self, clock):
        cache = TTLCache(max_entries=10, timer=clock)
        for i in range(10):
            cache.set(f"/dir{i}", ())
        # Entries 3..9 are read; 0, 1, 2 stay at the initial count
        for i in range(3, 10):
            cache.get(f"/dir{i}")

        cache.set("/new", ())

        assert cache.size() == 8
        for i in range(3):
            assert not cache.has(f"/dir{i}")
        for i in range(3, 10):
            assert cache.has(f"/dir{i}")
        assert cache.has("/new")

    def test_expired_entries_evicted_before_live_ones(self, clock):
        cache = TTLCache(ttl_seconds=10, max_entries=4, timer=clock)
        cache.set("/stale1", ())
        cache.set("/stale2", ())
        clock.advance(5)
        cache.set("/fresh1", ())
        cache.set("/fresh2", ())
        clock.advance(6)

        cache.set("/new", ())

        # Purging the two expired entries was enough; no live entry was dropped
        assert cache.size() == 3
        assert cache.has("/fresh1")
        assert cache.has("/fresh2")
        assert cache.has("/new")

    def test_overwrite_at_capacity_does_not_evict(self, clock):
        cache = TTLCache(max_entries=3, timer=clock)
        for key in ("/a", "/b", "/c"):
            cache.set(key, ())

        cache.set("/b", ("updated",))

        assert cache.size() == 3
        assert cache.get("/b") == ("updated",)

    def test_memory_bound_triggers_eviction(self, clock):
        # 0.01 MB is about 10 KB; each 10-item entry is estimated at 3.5 KB
        cache = TTLCache(max_entries=100, max_memory_mb=0.01, timer=clock)
        for i in range(10):
            cache.set(f"/dir{i}", tuple(range(10)))

        assert cache.approx_memory_bytes <= 0.01 * 1024 * 1024
        assert cache.size() < 10
        assert cache.has("/dir9")


class TestTTLCacheThreadSafety:
    """The janitor thread purges while the loop reads and writes."""

    def test_concurrent_set_get_purge(self, clock):
        cache = TTLCache(max_entries=50, timer=clock)
        errors = []

        def worker(n: int):
            try:
                for i in range(200):
                    cache.set(f"/w{n}/{i}", (i,))
                    cache.get(f"/w{n}/{i // 2}")
                    cache.purge_expired()
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(worker, range(4)))

        assert errors == []
        assert cache.size() <= 50


class TestCachePair:
    """Directory and search caches never share entries."""

    def test_caches_are_independent(self, clock):
        pair = CachePair.create(CacheConfig(), timer=clock)
        pair.directories.set("/root", ("dir",))

        assert pair.searches.get("/root") is None
        assert pair.directories.name == "directories"
        assert pair.searches.name == "searches"

    def test_clear_clears_both(self, clock):
        pair = CachePair.create(timer=clock)
        pair.directories.set("/root", ())
        pair.searches.set("/root:foo", ())

        pair.clear()

        assert pair.directories.size() == 0
        assert pair.searches.size() == 0


class TestCacheJanitor:
    """Tests for the background expiry sweep."""

    def test_run_once_reclaims_expired_entries(self, clock):
        cache = TTLCache(ttl_seconds=5, timer=clock)
        cache.set("/a", ())
        cache.set("/b", ())
        janitor = CacheJanitor(interval_seconds=60)
        janitor.register(cache)

        clock.advance(10)

        assert janitor.run_once() == 2
        assert cache.size() == 0

    def test_thread_purges_without_reads(self, clock):
        cache = TTLCache(ttl_seconds=5, timer=clock)
        cache.set("/a", ())
        clock.advance(10)
        swept = threading.Event()

        janitor = CacheJanitor(interval_seconds=0.01)
        original = janitor.run_once

        def run_once():
            removed = original()
            swept.set()
            return removed

        janitor.run_once = run_once
        janitor.register(cache)
        janitor.start()
        try:
            assert swept.wait(2)
            assert cache.size() == 0
        finally:
            janitor.stop(timeout=1)
        assert not janitor.is_running

    def test_registration_is_weak(self, clock):
        janitor = CacheJanitor()
        cache = TTLCache(timer=clock)
        janitor.register(cache)

        del cache

        assert janitor.run_once() == 0
        assert len(janitor._caches) == 0

    def test_ensure_janitor_is_process_wide(self, clock):
        first = TTLCache(timer=clock)
        second = TTLCache(timer=clock)

        janitor_a = ensure_janitor(first, interval_seconds=60)
        janitor_b = ensure_janitor(second, interval_seconds=1)

        assert janitor_a is janitor_b
        assert janitor_a.interval_seconds == 60
        assert janitor_a.is_running
        assert first in janitor_a._caches
        assert second in janitor_a._caches

        shutdown_janitor()
        assert not janitor_a.is_running
