import asyncio

import pytest

from api_aggregator.services.cache import CacheService


class CountingFactory:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


def test_hit_returns_same_value_without_calling_factory(cache):
    factory = CountingFactory(["payload"])

    first = asyncio.run(cache.get_or_create("news:ai", factory))
    second = asyncio.run(cache.get_or_create("news:ai", factory))

    assert first is second
    assert factory.calls == 1


def test_none_is_never_cached(cache):
    factory = CountingFactory(None)

    for _ in range(3):
        assert asyncio.run(cache.get_or_create("weather:Nowhere", factory)) is None

    assert factory.calls == 3
    assert len(cache) == 0


def test_entries_expire_after_ttl(clock):
    cache = CacheService(ttl_seconds=300, clock=clock)
    factory = CountingFactory({"temp": 12})

    asyncio.run(cache.get_or_create("weather:London", factory))
    clock.advance(299)
    asyncio.run(cache.get_or_create("weather:London", factory))
    assert factory.calls == 1

    clock.advance(1)
    assert cache.get("weather:London") is None
    asyncio.run(cache.get_or_create("weather:London", factory))
    assert factory.calls == 2


def test_factory_errors_propagate_and_store_nothing(cache):
    async def failing():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        asyncio.run(cache.get_or_create("github:python", failing))

    assert cache.get("github:python") is None


def test_distinct_keys_are_independent(cache):
    london = CountingFactory("london")
    paris = CountingFactory("paris")

    assert asyncio.run(cache.get_or_create("weather:London", london)) == "london"
    assert asyncio.run(cache.get_or_create("weather:Paris", paris)) == "paris"
    assert len(cache) == 2


def test_remove_evicts_immediately(cache):
    cache.set("a", 1)
    cache.set("b", 2)

    cache.remove("a")
    cache.remove("missing")

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert len(cache) == 1


def test_len_ignores_expired_entries(clock):
    cache = CacheService(ttl_seconds=10, clock=clock)
    cache.set("old", 1)
    clock.advance(5)
    cache.set("new", 2)
    clock.advance(6)

    assert len(cache) == 1
    assert cache.get("new") == 2


def test_writes_sweep_keys_that_are_never_read_again(clock):
    cache = CacheService(ttl_seconds=300, clock=clock)
    for i in range(1000):
        cache.set(f"news:query-{i}", i)

    clock.advance(301)
    for i in range(1000):
        cache.set(f"news:other-{i}", i)

    assert len(cache._store) == 1000
    assert cache.get("news:other-0") == 0


def test_sweep_runs_at_most_once_per_ttl(clock):
    cache = CacheService(ttl_seconds=300, clock=clock)
    cache.set("seed", 0)
    clock.advance(50)
    cache.set("first", 1)
    clock.advance(250)
    cache.set("second", 2)
    assert "seed" not in cache._store

    clock.advance(100)
    # "first" has expired but the next sweep is not due yet
    cache.set("third", 3)
    assert "first" in cache._store

    clock.advance(200)
    cache.set("fourth", 4)
    assert set(cache._store) == {"third", "fourth"}
