# feedesk/features/users/settings_repo.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

# Documents whose `commissions` is a non-empty embedded document.
NON_EMPTY_COMMISSIONS = {"commissions": {"$type": "object", "$ne": {}}}


class UserSettingsRepo:
    """
    user_settings collection: one document per user.

    The `commissions` field holds the user's override in internal form
    (None when the user has no override).
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["user_settings"]

    async def exists(self, user_id: str) -> bool:
        doc = await self._col.find_one({"user_id": user_id}, {"_id": 1})
        return doc is not None

    async def get_commissions(self, user_id: str) -> Optional[Dict[str, Any]]:
        doc = await self._col.find_one({"user_id": user_id}, {"_id": 0, "commissions": 1})
        if not doc:
            return None
        return doc.get("commissions")

    async def set_commissions(
        self,
        user_id: str,
        commissions: Optional[Dict[str, Any]],
        *,
        session: AsyncIOMotorClientSession | None = None,
    ) -> bool:
        """
        Replace the user's commissions override.

        Returns False if the user has no settings document (nothing is created).
        """
        res = await self._col.update_one(
            {"user_id": user_id},
            {"$set": {"commissions": commissions, "updated_at": datetime.now(timezone.utc)}},
            session=session,
        )
        return res.matched_count == 1

    async def list_with_commissions(
        self, *, session: AsyncIOMotorClientSession | None = None
    ) -> List[Dict[str, Any]]:
        cursor = self._col.find(
            NON_EMPTY_COMMISSIONS,
            {"_id": 0, "user_id": 1, "commissions": 1},
            session=session,
        ).sort("user_id", 1)
        return [doc async for doc in cursor]
