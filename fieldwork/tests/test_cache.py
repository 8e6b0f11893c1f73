"""Tests for the read-through TTL cache."""

from __future__ import annotations

import pytest

from fieldwork.core.cache import Resource, ResourceKey, TTLCache
from fieldwork.core.errors import NetworkError


class CountingLoader:
    def __init__(self, payload):
        self.payload = payload
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.payload


ACTIVITIES_7 = ResourceKey(Resource.ACTIVITIES, "7")


@pytest.mark.asyncio
async def test_second_read_within_ttl_is_a_hit(cache):
    loader = CountingLoader(["a"])
    assert await cache.read(ACTIVITIES_7, loader) == ["a"]
    assert await cache.read(ACTIVITIES_7, loader) == ["a"]
    assert loader.calls == 1
    assert cache.hits == 1
    assert cache.misses == 1


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(cache, clock):
    loader = CountingLoader(["a"])
    await cache.read(ACTIVITIES_7, loader)
    clock.advance(29.9)
    await cache.read(ACTIVITIES_7, loader)
    assert loader.calls == 1

    clock.advance(0.2)
    await cache.read(ACTIVITIES_7, loader)
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_invalidate_key_forces_reload(cache):
    loader = CountingLoader(["a"])
    await cache.read(ACTIVITIES_7, loader)
    cache.invalidate(ACTIVITIES_7)
    await cache.read(ACTIVITIES_7, loader)
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_invalidate_resource_drops_every_scope(cache):
    first, second = CountingLoader(1), CountingLoader(2)
    routes = CountingLoader(3)
    await cache.read(ResourceKey(Resource.FINDINGS, "7"), first)
    await cache.read(ResourceKey(Resource.FINDINGS, "*"), second)
    await cache.read(ResourceKey(Resource.ROUTES, "1"), routes)

    cache.invalidate(Resource.FINDINGS)

    await cache.read(ResourceKey(Resource.FINDINGS, "7"), first)
    await cache.read(ResourceKey(Resource.FINDINGS, "*"), second)
    await cache.read(ResourceKey(Resource.ROUTES, "1"), routes)
    assert (first.calls, second.calls, routes.calls) == (2, 2, 1)


@pytest.mark.asyncio
async def test_loader_failure_is_not_cached(cache):
    async def failing():
        raise NetworkError("down", status_code=503)

    with pytest.raises(NetworkError):
        await cache.read(ACTIVITIES_7, failing)

    loader = CountingLoader(["ok"])
    assert await cache.read(ACTIVITIES_7, loader) == ["ok"]
    assert cache.snapshot()["entries"] == 1


def test_snapshot_reports_ttl():
    cache = TTLCache(ttl_seconds=12.5)
    snap = cache.snapshot()
    assert snap["ttl_seconds"] == 12.5
    assert snap["entries"] == 0
    assert cache.ttl_seconds == 12.5
