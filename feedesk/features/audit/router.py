"""
/admin/logs endpoints:
- search the admin audit log
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from feedesk.core.actor import ActorContext, get_actor_context
from feedesk.db.mongo import get_db
from feedesk.features.audit.schemas import AdminLogRead
from feedesk.features.audit.service import search_admin_logs

router = APIRouter(prefix="/admin/logs", tags=["audit"])


@router.get("", response_model=list[AdminLogRead])
async def list_admin_logs_endpoint(
    key: Optional[str] = Query(None, max_length=200),
    user_id: Optional[str] = Query(None),
    order_by: Optional[str] = Query(None),
    direction: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncIOMotorDatabase = Depends(get_db),
    _actor: ActorContext = Depends(get_actor_context),
):
    return await search_admin_logs(
        db,
        key=key,
        user_id=user_id,
        order_by=order_by,
        direction=direction,
        limit=limit,
    )
