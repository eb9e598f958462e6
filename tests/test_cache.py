"""TTL cache expiry behaviour."""

from __future__ import annotations

from app.cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: TTLCache[str] = TTLCache(10, clock=clock)
    cache.set("a", "value")

    clock.now += 9
    assert cache.get("a") == "value"
    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_zero_ttl_disables_caching() -> None:
    cache: TTLCache[str] = TTLCache(0)
    cache.set("a", "value")

    assert cache.get("a") is None


def test_prune_and_invalidate() -> None:
    clock = FakeClock()
    cache: TTLCache[int] = TTLCache(10, clock=clock)
    cache.set("short", 1, ttl=1)
    cache.set("long", 2)
    cache.set("other", 3)

    clock.now += 5
    assert cache.prune() == 1
    cache.invalidate("long")
    assert cache.get("long") is None
    assert cache.get("other") == 3
    cache.invalidate()
    assert len(cache) == 0
