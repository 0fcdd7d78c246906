"""
UsersRepo: read access to the users collection.

Users are created/managed by the accounts service; this backend only needs
their identity for commission lookups and audit entries.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase


class UsersRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["users"]

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"id": user_id}, {"_id": 0})

    async def get_many(
        self, user_ids: Iterable[str], *, session: AsyncIOMotorClientSession | None = None
    ) -> Dict[str, Dict[str, Any]]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        cursor = self._col.find({"id": {"$in": ids}}, {"_id": 0}, session=session)
        return {doc["id"]: doc async for doc in cursor}
