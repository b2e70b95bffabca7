"""
Tests para SheetCache (TTL, invalidacion y desalojo).
"""
import pytest

from app.infrastructure.external.sheets import SheetCache


class FakeClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_get_and_expiry(clock):
    cache = SheetCache(ttl_s=60, clock=clock)
    cache.set("s1:Reservas", ["row"])

    assert cache.get("s1:Reservas") == ["row"]
    clock.advance(61)
    assert cache.get("s1:Reservas") is None
    assert len(cache) == 0


def test_per_entry_ttl(clock):
    cache = SheetCache(ttl_s=60, clock=clock)
    cache.set("a", 1, ttl_s=5)
    cache.set("b", 2)

    clock.advance(10)

    assert cache.get("a") is None
    assert cache.get("b") == 2


def test_key_format():
    assert SheetCache.key("abc", "Tours 2024") == "abc:Tours 2024"


def test_invalidate_and_pattern(clock):
    cache = SheetCache(clock=clock)
    cache.set("s1:Reservas", 1)
    cache.set("s1:Tours", 2)
    cache.set("s2:Reservas", 3)

    assert cache.invalidate("s1:Reservas") is True
    assert cache.invalidate("s1:Reservas") is False
    assert cache.invalidate_pattern(r"^s1:") == 1
    assert cache.get("s2:Reservas") == 3


def test_cleanup_expired(clock):
    cache = SheetCache(ttl_s=10, clock=clock)
    cache.set("a", 1)
    clock.advance(5)
    cache.set("b", 2)
    clock.advance(6)

    assert cache.cleanup_expired() == 1
    assert cache.get("b") == 2


def test_eviction_prefers_expired_entries(clock):
    cache = SheetCache(ttl_s=100, max_entries=2, clock=clock)
    cache.set("old", 1, ttl_s=1)
    cache.set("fresh", 2)
    clock.advance(2)

    cache.set("new", 3)

    assert cache.get("fresh") == 2
    assert cache.get("new") == 3
    assert cache.stats()["evictions"] == 1


def test_eviction_removes_least_used(clock):
    cache = SheetCache(max_entries=2, clock=clock)
    cache.set("a", 1)
    clock.advance(1)
    cache.set("b", 2)
    cache.get("a")

    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_stats(clock):
    cache = SheetCache(clock=clock)
    cache.set("a", 1)
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()

    assert stats["entries"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


def test_clear(clock):
    cache = SheetCache(clock=clock)
    cache.set("a", 1)
    cache.clear()
    assert len(cache) == 0


def test_invalid_max_entries():
    with pytest.raises(ValueError):
        SheetCache(max_entries=0)
