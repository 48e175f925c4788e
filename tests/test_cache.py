"""
Tests for the key-value cache backends.
"""

import time

import pytest

from vkg_agent.infra.cache import InMemoryCache, create_cache
from vkg_agent.config.settings import Settings


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.mark.asyncio
async def test_get_set_delete(cache):
    await cache.set("k", {"classes": ["Customer"]})

    assert await cache.get("k") == {"classes": ["Customer"]}

    await cache.delete("k")
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_values_are_copies(cache):
    value = {"tables": ["a"]}
    await cache.set("k", value)
    value["tables"].append("b")

    cached = await cache.get("k")
    cached["tables"].append("c")

    assert await cache.get("k") == {"tables": ["a"]}


@pytest.mark.asyncio
async def test_expired_entries_are_dropped(cache, monkeypatch):
    await cache.set("k", 1, ttl=10)
    now = time.time()
    monkeypatch.setattr(time, "time", lambda: now + 11)

    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_hash_operations(cache):
    await cache.hset("vkg:catalogs:acme:ws", "tacme_bank", {"status": "active"})
    await cache.hset("vkg:catalogs:acme:ws", "tacme_crm", {"status": "pending"})

    assert await cache.hget("vkg:catalogs:acme:ws", "tacme_bank") == {"status": "active"}
    assert set(await cache.hgetall("vkg:catalogs:acme:ws")) == {"tacme_bank", "tacme_crm"}

    await cache.hdel("vkg:catalogs:acme:ws", "tacme_crm")
    assert list(await cache.hgetall("vkg:catalogs:acme:ws")) == ["tacme_bank"]
    assert await cache.hgetall("missing") == {}


@pytest.mark.asyncio
async def test_memory_backend_from_settings():
    cache = await create_cache(Settings(cache_backend="memory"))

    assert isinstance(cache, InMemoryCache)


@pytest.mark.asyncio
async def test_unreachable_redis_falls_back_to_memory():
    settings = Settings(cache_backend="redis", redis_url="redis://127.0.0.1:1/0")

    cache = await create_cache(settings)

    assert isinstance(cache, InMemoryCache)
