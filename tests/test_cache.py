from services.cache import TTLCache
from conftest import ManualClock


def test_hit_before_expiry():
    clock = ManualClock()
    cache = TTLCache(60, clock=clock)
    cache.put("IBM", {"price": 1.0})
    clock.advance(59.9)
    assert cache.get("IBM") == {"price": 1.0}


def test_entry_expires_at_ttl():
    clock = ManualClock()
    cache = TTLCache(60, clock=clock)
    cache.put("IBM", 1)
    clock.advance(60)
    assert cache.get("IBM") is None
    assert len(cache) == 0


def test_put_refreshes_timestamp():
    clock = ManualClock()
    cache = TTLCache(10, clock=clock)
    cache.put("k", "old")
    clock.advance(8)
    cache.put("k", "new")
    clock.advance(8)
    assert cache.get("k") == "new"


def test_invalidate_and_clear():
    cache = TTLCache(10)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.invalidate("a")
    cache.invalidate("missing")
    assert cache.get("a") is None
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0
