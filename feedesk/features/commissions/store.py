"""
Cached commission store.

Reads go through the cache; writes go to MongoDB first and then DELETE the
affected cache keys (never overwrite them), so the next reader reloads the
authoritative value.

Cache problems never fail a request: reads fall back to MongoDB. A key whose
invalidation failed is remembered, and reads of it bypass the cache (retrying the
delete first) until a delete succeeds, so a write is never hidden behind a stale entry.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Mapping, Optional, Set

from fastapi import FastAPI

from feedesk.core.config import config
from feedesk.features.commissions.cache import CacheError, CommissionsCache, build_commissions_cache
from feedesk.features.commissions.persistence import CommissionsPersistence, MongoCommissionsPersistence
from feedesk.features.commissions.schemas import CommissionSet

logger = logging.getLogger(__name__)

GLOBAL_CACHE_KEY = "commissions"


def user_cache_key(user_id: str) -> str:
    return f"commissions_{user_id}"


class CachedCommissionsStore:
    def __init__(self, persistence: CommissionsPersistence, cache: CommissionsCache):
        self.persistence = persistence
        self._cache = cache
        # Serialises global changes within this process; the versioned write on
        # the global document catches writers in other processes.
        self.global_write_lock = asyncio.Lock()
        # Keys whose last invalidation failed; the cache may still hold the old value.
        self._stale_keys: Set[str] = set()

    async def _read_through(self, key: str, load: Callable[[], Awaitable[Optional[CommissionSet]]]) -> Optional[CommissionSet]:
        async def loader() -> Optional[dict[str, Any]]:
            commissions = await load()
            return commissions.to_json() if commissions is not None else None

        if key in self._stale_keys and not await self._invalidate(key):
            return await load()

        try:
            raw = await self._cache.get(key, loader)
        except CacheError:
            logger.warning("commissions_cache_read_failed key=%s; reading from storage", key, exc_info=True)
            return await load()

        return CommissionSet.model_validate(raw) if raw else None

    async def _invalidate(self, key: str) -> bool:
        try:
            await self._cache.delete(key)
        except CacheError:
            self._stale_keys.add(key)
            logger.error("commissions_cache_invalidate_failed key=%s pending=%s", key, len(self._stale_keys), exc_info=True)
            return False

        self._stale_keys.discard(key)
        return True

    # ---- reads ----

    async def get_global(self) -> Optional[CommissionSet]:
        return await self._read_through(GLOBAL_CACHE_KEY, self.persistence.load_global)

    async def get_user_override(self, user_id: str) -> Optional[CommissionSet]:
        async def load() -> Optional[CommissionSet]:
            return await self.persistence.load_override(user_id)

        return await self._read_through(user_cache_key(user_id), load)

    # ---- writes ----

    async def set_global(
        self,
        commissions: CommissionSet,
        reconciled: Mapping[str, CommissionSet],
        *,
        expected_version: int,
    ) -> int:
        version = await self.persistence.apply_global_change(
            commissions, reconciled, expected_version=expected_version
        )

        for user_id in reconciled:
            await self._invalidate(user_cache_key(user_id))
        await self._invalidate(GLOBAL_CACHE_KEY)
        return version

    async def set_user_override(self, user_id: str, commissions: CommissionSet) -> bool:
        saved = await self.persistence.save_override(user_id, commissions)
        if saved:
            await self._invalidate(user_cache_key(user_id))
        return saved

    async def reset_user_override(self, user_id: str) -> bool:
        saved = await self.persistence.save_override(user_id, None)
        if saved:
            await self._invalidate(user_cache_key(user_id))
        return saved


@asynccontextmanager
async def commissions_lifespan(fastapi_app: FastAPI):
    """Build the cache + store once per process. Needs app.state.db (mongo_lifespan)."""
    state = getattr(fastapi_app, "state")

    cache = build_commissions_cache(config)
    persistence = MongoCommissionsPersistence(state.db, use_transactions=config.mongo_transactions)
    setattr(state, "commissions_store", CachedCommissionsStore(persistence, cache))

    try:
        yield
    finally:
        await cache.aclose()
