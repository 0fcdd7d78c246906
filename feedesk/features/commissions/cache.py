"""
Commission caches.

Read-through with delete-on-write:
- get(key, loader) returns the cached value or runs `loader` and caches its result
- delete(key) drops the entry; the next reader reloads from MongoDB

delete() bumps a per-key generation counter. A loader that started before a
delete will not store its (now stale) result. The memory backend only keeps
that counter (and the key lock) while a load is in flight.

Values are JSON-safe (dicts of strings / None) so both backends store the same thing.

Important:
- MemoryCommissionsCache exists per-process. With several Uvicorn workers a write
  in one worker cannot invalidate another worker's cache; set REDIS_URL in that case.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from feedesk.core.config import AppConfig

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


class CacheError(Exception):
    """Cache backend unavailable. Never surfaced to API callers."""


class CommissionsCache(Protocol):
    async def get(self, key: str, loader: Loader) -> Any: ...

    async def delete(self, key: str) -> None: ...

    async def aclose(self) -> None: ...


@dataclass(frozen=True)
class _CacheEntry:
    expires_at_m: float
    value: Any


@dataclass
class _LoadSlot:
    """Exists only while at least one reader is loading the key."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0
    generation: int = 0


class MemoryCommissionsCache:
    """Small per-process TTL cache."""

    def __init__(self, *, ttl_seconds: float):
        self._ttl_seconds = float(ttl_seconds)
        self._entries: Dict[str, _CacheEntry] = {}
        self._slots: Dict[str, _LoadSlot] = {}

    def _fresh(self, key: str) -> Optional[_CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at_m > time.monotonic():
            return entry
        del self._entries[key]
        return None

    async def get(self, key: str, loader: Loader) -> Any:
        entry = self._fresh(key)
        if entry is not None:
            return copy.deepcopy(entry.value)

        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _LoadSlot()
        slot.users += 1
        try:
            # Avoid thundering herd on cache miss.
            async with slot.lock:
                entry = self._fresh(key)
                if entry is not None:
                    return copy.deepcopy(entry.value)

                generation = slot.generation
                value = await loader()

                if slot.generation == generation:
                    self._entries[key] = _CacheEntry(
                        expires_at_m=time.monotonic() + self._ttl_seconds,
                        value=copy.deepcopy(value),
                    )
                else:
                    logger.debug("cache_store_skipped key=%s reason=invalidated_during_load", key)
                return value
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    async def delete(self, key: str) -> None:
        # Only an in-flight load can store a stale value; tell it via its slot.
        slot = self._slots.get(key)
        if slot is not None:
            slot.generation += 1
        self._entries.pop(key, None)

    async def aclose(self) -> None:
        self._entries.clear()


class RedisCommissionsCache:
    """
    Shared cache for all workers.

    Layout per logical key K (with prefix P):
      P K        -> JSON value, expires after ttl
      P K :gen   -> integer generation, INCR'd by delete()
    """

    def __init__(self, client: aioredis.Redis, *, ttl_seconds: int, prefix: str = ""):
        self._redis = client
        self._ttl_seconds = int(ttl_seconds)
        self._prefix = prefix

    def _value_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _gen_key(self, key: str) -> str:
        return f"{self._prefix}{key}:gen"

    async def get(self, key: str, loader: Loader) -> Any:
        value_key = self._value_key(key)
        gen_key = self._gen_key(key)

        try:
            raw = await self._redis.get(value_key)
            if raw is not None:
                return json.loads(raw)
            generation = await self._redis.get(gen_key)
        except RedisError as exc:
            raise CacheError(f"redis read failed for {key}") from exc

        value = await loader()

        # Store only if nobody invalidated the key while we were loading.
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(gen_key)
                if await pipe.get(gen_key) == generation:
                    pipe.multi()
                    pipe.set(value_key, json.dumps(value), ex=self._ttl_seconds)
                    await pipe.execute()
                else:
                    logger.debug("cache_store_skipped key=%s reason=invalidated_during_load", key)
        except WatchError:
            logger.debug("cache_store_skipped key=%s reason=watch_conflict", key)
        except RedisError:
            logger.warning("cache_store_failed key=%s", key, exc_info=True)

        return value

    async def delete(self, key: str) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(self._gen_key(key))
                pipe.delete(self._value_key(key))
                await pipe.execute()
        except RedisError as exc:
            raise CacheError(f"redis delete failed for {key}") from exc

    async def aclose(self) -> None:
        await self._redis.aclose()


def build_commissions_cache(cfg: AppConfig) -> CommissionsCache:
    if cfg.redis_url:
        client = aioredis.from_url(cfg.redis_url, encoding="utf-8", decode_responses=True)
        logger.info("commissions_cache backend=redis prefix=%s ttl=%s", cfg.cache_key_prefix, cfg.commissions_cache_ttl_seconds)
        return RedisCommissionsCache(client, ttl_seconds=cfg.commissions_cache_ttl_seconds, prefix=cfg.cache_key_prefix)

    logger.info("commissions_cache backend=memory ttl=%s", cfg.commissions_cache_ttl_seconds)
    return MemoryCommissionsCache(ttl_seconds=cfg.commissions_cache_ttl_seconds)
