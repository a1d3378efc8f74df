"""
ApiCache tests: TTL expiry, stale reads, cleanup and statistics.
"""
from spacenexus.services.api_cache import STALE_GRACE, ApiCache, get_api_cache


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_get_returns_value_until_expiry():
    clock = FakeClock()
    cache = ApiCache(clock=clock)
    cache.set("news", ["a"], ttl_seconds=60)

    assert cache.get("news") == ["a"]
    clock.advance(61)
    assert cache.get("news") is None


def test_get_stale_keeps_expired_entries():
    clock = FakeClock()
    cache = ApiCache(clock=clock)
    cache.set("launches", {"count": 3}, ttl_seconds=10)
    clock.advance(30)

    stale = cache.get_stale("launches")
    assert stale["value"] == {"count": 3}
    assert stale["is_stale"] is True
    assert cache.get_stale("missing") is None


def test_cleanup_evicts_only_ancient_entries():
    clock = FakeClock()
    cache = ApiCache(clock=clock)
    cache.set("old", 1, ttl_seconds=10)
    cache.set("young", 2, ttl_seconds=1000)

    clock.advance(10 * STALE_GRACE + 1)
    assert cache.cleanup() == 1
    assert cache.get_stale("old") is None
    assert cache.get_stale("young")["value"] == 2


def test_stats_and_clear():
    cache = ApiCache()
    cache.set("k", "v")
    cache.get("k")
    cache.get("nope")

    stats = cache.get_stats()
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == "50.0%"

    cache.clear()
    stats = cache.get_stats()
    assert stats["size"] == 0
    assert stats["hit_rate"] == "N/A"


def test_delete():
    cache = ApiCache()
    cache.set("k", "v")
    assert cache.delete("k") is True
    assert cache.delete("k") is False


def test_singleton():
    assert get_api_cache() is get_api_cache()
