import pytest

from mapstatic.cache import TileCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = TileCache(ttl_s=60, clock=clock)
    cache.set("GET:a", b"tile")
    clock.now += 59
    assert cache.get("GET:a") == b"tile"
    clock.now += 1
    assert cache.get("GET:a") is None
    assert cache.size == 0


def test_set_sweeps_expired_entries():
    clock = FakeClock()
    cache = TileCache(ttl_s=10, clock=clock)
    cache.set("GET:a", b"1")
    cache.set("GET:b", b"2")
    clock.now += 11
    cache.set("GET:c", b"3")
    assert cache.size == 1


def test_disabled_cache_stores_nothing():
    cache = TileCache(enabled=False)
    cache.set("GET:a", b"tile")
    assert cache.get("GET:a") is None
    assert cache.size == 0
    assert not cache.enabled


def test_lru_eviction_keeps_recently_read():
    cache = TileCache(ttl_s=3600, max_entries=2, clock=FakeClock())
    cache.set("GET:a", b"a")
    cache.set("GET:b", b"b")
    assert cache.get("GET:a") == b"a"
    cache.set("GET:c", b"c")
    assert cache.get("GET:b") is None
    assert cache.get("GET:a") == b"a"
    assert cache.get("GET:c") == b"c"


def test_flush_clears_everything():
    cache = TileCache()
    cache.set("GET:a", b"a")
    cache.flush()
    assert cache.get("GET:a") is None


def test_invalid_max_entries():
    with pytest.raises(ValueError):
        TileCache(max_entries=0)


def test_negative_ttl_clamped():
    assert TileCache(ttl_s=-5).ttl_s == 0.0
