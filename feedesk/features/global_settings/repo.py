"""
GlobalSettingsRepo: key/value documents for platform-wide settings.

Document shape:
    {"key": "commissions", "value": {...}, "version": 3, "updated_at": ...}

`version` is bumped on every write. Writers pass the version they read; a
mismatch means another writer got there first.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from feedesk.core.errors import ConflictError


class GlobalSettingsRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["global_settings"]

    async def get(self, key: str) -> Optional[Any]:
        doc = await self._col.find_one({"key": key}, {"_id": 0, "value": 1})
        if not doc:
            return None
        return doc.get("value")

    async def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        doc = await self._col.find_one({"key": key}, {"_id": 0, "value": 1, "version": 1})
        if not doc:
            return None, 0
        return doc.get("value"), int(doc.get("version") or 0)

    async def set_versioned(
        self,
        key: str,
        value: Any,
        *,
        expected_version: int,
        session: AsyncIOMotorClientSession | None = None,
    ) -> int:
        """
        Write `value` if the stored version still equals `expected_version`.

        Version 0 means "no document yet" (or a legacy document without a version).
        Returns the new version; raises ConflictError on mismatch.
        """
        new_version = int(expected_version) + 1
        now = datetime.now(timezone.utc)

        if expected_version == 0:
            flt: Dict[str, Any] = {"key": key, "version": {"$in": [None, 0]}}
        else:
            flt = {"key": key, "version": int(expected_version)}

        try:
            res = await self._col.update_one(
                flt,
                {
                    "$set": {"value": value, "version": new_version, "updated_at": now},
                    "$setOnInsert": {"created_at": now},
                },
                upsert=(expected_version == 0),
                session=session,
            )
        except DuplicateKeyError as exc:
            # Upsert raced an existing (versioned) document with the same key.
            raise version_conflict(key, expected_version) from exc

        if res.matched_count == 0 and res.upserted_id is None:
            raise version_conflict(key, expected_version)
        return new_version


def version_conflict(key: str, expected_version: int) -> ConflictError:
    return ConflictError(
        code=f"{key}_version_conflict",
        message=f"Global setting '{key}' was changed concurrently; reload and retry",
        details={"key": key, "expected_version": expected_version},
    )
