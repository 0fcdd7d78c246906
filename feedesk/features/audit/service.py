"""
Admin audit log.

Recording is best-effort: the commission change it describes is already
committed, so a failed audit insert is logged instead of failing the request.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from feedesk.core.actor import ActorContext
from feedesk.core.errors import BadRequestError
from feedesk.features.audit.repo import AdminLogRepo
from feedesk.features.audit.schemas import SORTABLE_FIELDS, AdminLogRead
from feedesk.features.users.schemas import UserIdentity

logger = logging.getLogger(__name__)


class AuditLog(Protocol):
    async def record(
        self,
        actor: ActorContext,
        action: str,
        description: str,
        subject: Optional[UserIdentity] = None,
    ) -> None: ...


class MongoAuditLog:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._repo = AdminLogRepo(db)

    async def record(
        self,
        actor: ActorContext,
        action: str,
        description: str,
        subject: Optional[UserIdentity] = None,
    ) -> None:
        doc = {
            "admin_id": actor.admin_id,
            "admin_email": actor.admin_email,
            "action": action,
            "description": description,
            "client_id": subject.id if subject else None,
            "client_email": subject.email if subject else None,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            await self._repo.insert(doc)
        except PyMongoError:
            logger.exception("audit_record_failed action=%s admin_id=%s", action, actor.admin_id)
            return

        logger.info("audit_recorded action=%s admin_id=%s client_id=%s", action, actor.admin_id, doc["client_id"])


async def search_admin_logs(
    db: AsyncIOMotorDatabase,
    *,
    key: Optional[str] = None,
    user_id: Optional[str] = None,
    order_by: Optional[str] = None,
    direction: Optional[int] = None,
    limit: int = 100,
) -> list[AdminLogRead]:
    """
    List audit entries, newest first unless `order_by` is given.

    direction=1 sorts ascending; anything else sorts descending.
    """
    if order_by is not None and order_by not in SORTABLE_FIELDS:
        raise BadRequestError(
            code="invalid_order_by",
            message=f"Cannot order by '{order_by}'",
            details={"allowed": sorted(SORTABLE_FIELDS)},
        )

    repo = AdminLogRepo(db)
    docs = await repo.search(
        key=(key or "").strip() or None,
        client_id=user_id,
        order_by=order_by or "created_at",
        ascending=(order_by is not None and direction == 1),
        limit=limit,
    )
    logger.debug("search_admin_logs count=%s key=%s user_id=%s", len(docs), key, user_id)
    return [AdminLogRead(**d) for d in docs]
