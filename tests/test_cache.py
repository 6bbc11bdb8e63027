"""Tests for the name-list cache."""

import threading

from fakes import wait_until
from snail_client.cache import NameListCache
from snail_client.helpers import MISS, NO_VALUE, CacheSlot


class TestNameListCache:
    """Tests for NameListCache."""

    def test_miss_then_put(self):
        cache = NameListCache()
        assert cache.get("conn", CacheSlot.BASE_NAMES) is MISS
        cache.put("conn", CacheSlot.BASE_NAMES, ["sin"])
        cache.put("conn", CacheSlot.BASE_NAMES, ["cos"])
        assert cache.get("conn", CacheSlot.BASE_NAMES) == ["sin"]
        assert cache.get("conn", CacheSlot.CORE_NAMES) is MISS

    def test_no_value_is_not_cached(self):
        cache = NameListCache()
        assert cache.get_or_fetch("conn", CacheSlot.BASE_NAMES, lambda: NO_VALUE) is NO_VALUE
        assert cache.get("conn", CacheSlot.BASE_NAMES) is MISS

    def test_concurrent_misses_fetch_once(self):
        cache = NameListCache()
        release = threading.Event()
        calls = []

        def fetch():
            calls.append(1)
            release.wait(2.0)
            return ["sin"]

        results = []
        threads = [
            threading.Thread(
                target=lambda: results.append(cache.get_or_fetch("conn", CacheSlot.BASE_NAMES, fetch))
            )
            for _ in range(3)
        ]
        for thread in threads:
            thread.start()
        assert wait_until(lambda: len(calls) == 1)
        release.set()
        for thread in threads:
            thread.join(2.0)
        assert calls == [1]
        assert results == [["sin"]] * 3

    def test_running_fetch_does_not_block_other_keys_or_evict(self):
        cache = NameListCache()
        started = threading.Event()
        release = threading.Event()

        def slow_fetch():
            started.set()
            release.wait(2.0)
            return ["late"]

        results = []
        fetcher = threading.Thread(
            target=lambda: results.append(cache.get_or_fetch("a", CacheSlot.BASE_NAMES, slow_fetch))
        )
        fetcher.start()
        assert started.wait(2.0)

        assert cache.get_or_fetch("b", CacheSlot.BASE_NAMES, lambda: ["fast"]) == ["fast"]
        assert cache.get_or_fetch("a", CacheSlot.CORE_NAMES, lambda: ["core"]) == ["core"]
        cache.evict("a")

        release.set()
        fetcher.join(2.0)
        assert results == [["late"]]
        assert cache.get("a", CacheSlot.BASE_NAMES) is MISS
        assert "a" not in cache

    def test_evict(self):
        cache = NameListCache()
        cache.put("a", CacheSlot.BASE_NAMES, ["x"])
        cache.put("b", CacheSlot.BASE_NAMES, ["y"])
        cache.evict("a")
        cache.evict("never-seen")
        assert "a" not in cache
        assert cache.get("b", CacheSlot.BASE_NAMES) == ["y"]
