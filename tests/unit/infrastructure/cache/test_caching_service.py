import asyncio

import pytest

from photostream.infrastructure.cache.caching_service import CachingServiceImpl, build_cache_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CachingServiceImpl(default_ttl=300, clock=clock)


def test_cache_key_is_order_independent():
    a = build_cache_key("fetchPhotosByFolder", {"userId": "u1", "gameNumber": "3", "maxResults": 50})
    b = build_cache_key("fetchPhotosByFolder", {"maxResults": 50, "gameNumber": "3", "userId": "u1"})
    assert a == b
    assert a == "fetchPhotosByFolder:gameNumber:3|maxResults:50|userId:u1"
    assert build_cache_key("op", {"a": 1}) != build_cache_key("op", {"a": 2})
    assert build_cache_key("op", {"flag": True, "tags": ["x", "y"]}) == "op:flag:true|tags:x,y"


def test_get_returns_value_until_ttl_expires(cache, clock):
    asyncio.run(cache.set("k", {"v": 1}, ttl=10))

    clock.now += 9
    assert asyncio.run(cache.get("k")) == {"v": 1}

    clock.now += 1
    assert asyncio.run(cache.get("k")) is None
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["size"] == 0


def test_invalidate_drops_only_dependent_entries(cache):
    async def scenario():
        await cache.set("list:u1/3", ["p1", "p2"], resource_ids=["p1", "p2", "folder:u1/3"])
        await cache.set("list:u1/4", ["p3"], resource_ids=["p3", "folder:u1/4"])
        await cache.set("detail:p2", {"id": "p2"}, resource_ids=["p2"])
        removed = await cache.invalidate("p2")
        return removed, await cache.get("list:u1/3"), await cache.get("detail:p2"), await cache.get("list:u1/4")

    removed, listing, detail, other = asyncio.run(scenario())

    assert removed == 2
    assert listing is None
    assert detail is None
    assert other == ["p3"]


def test_invalidate_unknown_resource_is_noop(cache):
    asyncio.run(cache.set("k", 1, resource_ids=["a"]))
    assert asyncio.run(cache.invalidate("zzz")) == 0
    assert asyncio.run(cache.get("k")) == 1


def test_overwriting_key_replaces_dependencies(cache):
    async def scenario():
        await cache.set("k", 1, resource_ids=["a"])
        await cache.set("k", 2, resource_ids=["b"])
        removed_a = await cache.invalidate("a")
        value = await cache.get("k")
        return removed_a, value

    assert asyncio.run(scenario()) == (0, 2)


def test_lru_bound_evicts_least_recently_used(clock):
    cache = CachingServiceImpl(default_ttl=300, max_entries=2, clock=clock)

    async def scenario():
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")
        await cache.set("c", 3)
        return [await cache.get(k) for k in ("a", "b", "c")]

    assert asyncio.run(scenario()) == [1, None, 3]


def test_lru_bound_prefers_expired_entries(clock):
    cache = CachingServiceImpl(default_ttl=300, max_entries=2, clock=clock)

    async def scenario():
        await cache.set("short", 1, ttl=1)
        await cache.set("long", 2)
        clock.now += 5
        await cache.set("new", 3)
        return await cache.get("long"), await cache.get("new")

    assert asyncio.run(scenario()) == (2, 3)


def test_clear_and_delete(cache):
    async def scenario():
        await cache.set("a", 1, resource_ids=["r"])
        await cache.set("b", 2)
        await cache.delete("b")
        assert await cache.get("b") is None
        await cache.clear()
        return cache.stats()

    stats = asyncio.run(scenario())
    assert stats["size"] == 0
    assert stats["indexed_resources"] == 0


def test_invalid_bound_rejected():
    with pytest.raises(ValueError):
        CachingServiceImpl(max_entries=0)
