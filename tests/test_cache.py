"""Unit tests for the commission caches."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from feedesk.features.commissions import cache as cache_module
from feedesk.features.commissions.cache import CacheError, MemoryCommissionsCache, RedisCommissionsCache


def _counting_loader(values):
    calls = {"n": 0}

    async def loader():
        value = values[min(calls["n"], len(values) - 1)]
        calls["n"] += 1
        return value

    return loader, calls


@pytest.mark.asyncio
async def test_memory_cache_reads_through_once():
    cache = MemoryCommissionsCache(ttl_seconds=60)
    loader, calls = _counting_loader([{"exchange": "0.9"}])

    assert await cache.get("commissions", loader) == {"exchange": "0.9"}
    assert await cache.get("commissions", loader) == {"exchange": "0.9"}
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_memory_cache_caches_none():
    cache = MemoryCommissionsCache(ttl_seconds=60)
    loader, calls = _counting_loader([None])

    assert await cache.get("commissions_u1", loader) is None
    assert await cache.get("commissions_u1", loader) is None
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_memory_cache_delete_forces_reload():
    cache = MemoryCommissionsCache(ttl_seconds=60)
    loader, calls = _counting_loader([{"v": "1"}, {"v": "2"}])

    assert await cache.get("k", loader) == {"v": "1"}
    await cache.delete("k")
    assert await cache.get("k", loader) == {"v": "2"}
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_memory_cache_expires_after_ttl(monkeypatch):
    now = {"t": 1000.0}
    monkeypatch.setattr(cache_module, "time", SimpleNamespace(monotonic=lambda: now["t"]))

    cache = MemoryCommissionsCache(ttl_seconds=10)
    loader, calls = _counting_loader([{"v": "1"}, {"v": "2"}])

    assert await cache.get("k", loader) == {"v": "1"}
    now["t"] += 9
    assert await cache.get("k", loader) == {"v": "1"}
    now["t"] += 2
    assert await cache.get("k", loader) == {"v": "2"}
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_memory_cache_returns_copies():
    cache = MemoryCommissionsCache(ttl_seconds=60)
    loader, _ = _counting_loader([{"transfer": {"USD": "1"}}])

    first = await cache.get("k", loader)
    first["transfer"]["USD"] = "999"

    assert await cache.get("k", loader) == {"transfer": {"USD": "1"}}


@pytest.mark.asyncio
async def test_loader_racing_a_delete_does_not_store_stale_value():
    cache = MemoryCommissionsCache(ttl_seconds=60)
    started = asyncio.Event()
    release = asyncio.Event()
    source = {"value": {"v": "old"}}

    async def slow_loader():
        value = dict(source["value"])
        started.set()
        await release.wait()
        return value

    reader = asyncio.create_task(cache.get("k", slow_loader))
    await started.wait()

    # Writer commits and invalidates while the reader is still loading.
    source["value"] = {"v": "new"}
    await cache.delete("k")
    release.set()

    assert await reader == {"v": "old"}

    async def loader():
        return dict(source["value"])

    assert await cache.get("k", loader) == {"v": "new"}


@pytest.mark.asyncio
async def test_redis_cache_hit_does_not_call_loader():
    client = MagicMock()
    client.get = AsyncMock(return_value=json.dumps({"exchange": "0.9"}))
    cache = RedisCommissionsCache(client, ttl_seconds=60, prefix="t:")
    loader = AsyncMock()

    assert await cache.get("commissions", loader) == {"exchange": "0.9"}
    client.get.assert_awaited_once_with("t:commissions")
    loader.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_read_failure_raises_cache_error():
    client = MagicMock()
    client.get = AsyncMock(side_effect=RedisConnectionError("down"))
    cache = RedisCommissionsCache(client, ttl_seconds=60)
    loader = AsyncMock()

    with pytest.raises(CacheError):
        await cache.get("commissions", loader)
    loader.assert_not_awaited()


@pytest.mark.asyncio
async def test_memory_cache_keeps_no_per_key_state_after_loads():
    cache = MemoryCommissionsCache(ttl_seconds=60)
    loader, _ = _counting_loader([{"v": "1"}])

    for n in range(50):
        await cache.get(f"commissions_u{n}", loader)
        await cache.delete(f"commissions_u{n}")

    assert cache._slots == {}
    assert cache._entries == {}


@pytest.mark.asyncio
async def test_memory_cache_drops_expired_entries(monkeypatch):
    now = {"t": 0.0}
    monkeypatch.setattr(cache_module, "time", SimpleNamespace(monotonic=lambda: now["t"]))
    cache = MemoryCommissionsCache(ttl_seconds=10)
    loader, _ = _counting_loader([None])

    await cache.get("k", loader)
    now["t"] = 11
    assert cache._fresh("k") is None
    assert "k" not in cache._entries


def _redis_with_pipeline(*, value=None, generation=None, generation_at_store=None):
    """Redis client double: plain GETs return value/generation, the pipeline sees generation_at_store."""
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(return_value=generation if generation_at_store is None else generation_at_store)
    pipe.execute = AsyncMock(return_value=[True])

    client = MagicMock()
    client.get = AsyncMock(side_effect=[value, generation])
    client.pipeline = MagicMock(return_value=pipe)
    return client, pipe


@pytest.mark.asyncio
async def test_redis_miss_stores_value_when_generation_unchanged():
    client, pipe = _redis_with_pipeline(generation="3")
    cache = RedisCommissionsCache(client, ttl_seconds=60, prefix="t:")
    loader = AsyncMock(return_value={"exchange": "0.9"})

    assert await cache.get("commissions", loader) == {"exchange": "0.9"}

    pipe.watch.assert_awaited_once_with("t:commissions:gen")
    pipe.multi.assert_called_once()
    pipe.set.assert_called_once_with("t:commissions", json.dumps({"exchange": "0.9"}), ex=60)
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_loader_racing_a_delete_does_not_store():
    # The generation moved from 3 to 4 while the loader ran.
    client, pipe = _redis_with_pipeline(generation="3", generation_at_store="4")
    cache = RedisCommissionsCache(client, ttl_seconds=60, prefix="t:")
    loader = AsyncMock(return_value={"exchange": "0.9"})

    assert await cache.get("commissions", loader) == {"exchange": "0.9"}

    pipe.set.assert_not_called()
    pipe.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_watch_conflict_skips_store_without_failing():
    client, pipe = _redis_with_pipeline(generation=None)
    pipe.execute.side_effect = WatchError("gen changed")
    cache = RedisCommissionsCache(client, ttl_seconds=60)
    loader = AsyncMock(return_value=None)

    assert await cache.get("commissions_u1", loader) is None
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_delete_bumps_generation_and_drops_value():
    client, pipe = _redis_with_pipeline()
    cache = RedisCommissionsCache(client, ttl_seconds=60, prefix="t:")

    await cache.delete("commissions_u1")

    client.pipeline.assert_called_once_with(transaction=True)
    pipe.incr.assert_called_once_with("t:commissions_u1:gen")
    pipe.delete.assert_called_once_with("t:commissions_u1")
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_delete_failure_raises_cache_error():
    client, pipe = _redis_with_pipeline()
    pipe.execute.side_effect = RedisConnectionError("down")
    cache = RedisCommissionsCache(client, ttl_seconds=60)

    with pytest.raises(CacheError):
        await cache.delete("commissions")
