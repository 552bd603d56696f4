from placematch.common.cache import TtlCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_get_returns_value_until_ttl_expires():
    clock = FakeClock()
    cache = TtlCache(60, clock=clock)
    cache.set("k", [1, 2])

    clock.now = 59.9
    assert cache.get("k") == [1, 2]

    clock.now = 60.0
    assert cache.get("k") is None
    assert len(cache) == 0
    assert cache.hits == 1
    assert cache.misses == 1


def test_full_cache_evicts_expired_then_oldest():
    clock = FakeClock()
    cache = TtlCache(10, max_entries=2, clock=clock)
    cache.set("a", 1)
    clock.now = 5
    cache.set("b", 2)
    clock.now = 6
    cache.set("c", 3)

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3

    clock.now = 15.5
    cache.set("d", 4)
    assert cache.get("c") == 3
    assert cache.get("d") == 4
    assert len(cache) == 2


def test_clear_and_default():
    cache = TtlCache(10)
    cache.set(("query", 1.0, 2.0), "x")
    cache.clear()

    assert cache.get(("query", 1.0, 2.0), "missing") == "missing"
