"""
AdminLogRepo: admin_logs collection (who changed what, and for which user).
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING


class AdminLogRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["admin_logs"]

    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc = {"id": str(uuid4()), **doc}
        await self._col.insert_one(doc)
        doc.pop("_id", None)
        return doc

    async def search(
        self,
        *,
        key: Optional[str] = None,
        client_id: Optional[str] = None,
        order_by: str = "created_at",
        ascending: bool = False,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        flt: Dict[str, Any] = {}

        if key:
            rx = {"$regex": re.escape(key), "$options": "i"}
            flt["$or"] = [{"admin_email": rx}, {"client_email": rx}, {"action": rx}]

        if client_id:
            flt["client_id"] = client_id

        cursor = (
            self._col.find(flt, {"_id": 0})
            .sort(order_by, ASCENDING if ascending else DESCENDING)
            .limit(int(limit))
        )
        return [doc async for doc in cursor]
