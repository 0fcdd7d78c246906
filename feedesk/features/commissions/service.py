"""
Commission service:
- read/write the global commission set (propagating changes into user overrides)
- read/write/reset per-user overrides
- list users with custom commissions

All inputs/outputs use the external (per-currency) shape; mapper.py converts.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from feedesk.core.actor import ActorContext
from feedesk.core.errors import NotFoundError
from feedesk.features.audit.service import AuditLog
from feedesk.features.commissions.mapper import to_external, to_internal
from feedesk.features.commissions.merge import overlay, reconcile_all
from feedesk.features.commissions.schemas import ExternalCommissions
from feedesk.features.commissions.store import CachedCommissionsStore
from feedesk.features.users.schemas import UserIdentity

logger = logging.getLogger(__name__)

STATUS_OK: Dict[str, str] = {"Status": "OK"}


def _settings_not_found(user_id: str) -> NotFoundError:
    return NotFoundError(code="user_settings_not_found", message="User settings not found!", details={"user_id": user_id})


class CommissionService:
    def __init__(self, store: CachedCommissionsStore, audit: AuditLog):
        self._store = store
        self._persistence = store.persistence
        self._audit = audit

    # ---- global ----

    async def get_global(self) -> Dict[str, Any]:
        """External global commissions, or {} if none have been set yet."""
        return to_external(await self._store.get_global())

    async def set_global(self, data: ExternalCommissions, actor: ActorContext) -> Dict[str, str]:
        new_global = to_internal(data)

        async with self._store.global_write_lock:
            # Base the reconcile on storage, not on a possibly stale cache entry.
            old_global, version = await self._persistence.load_global_versioned()
            overrides = await self._persistence.list_non_empty_overrides()

            reconciled = reconcile_all(old_global, new_global, overrides)
            new_version = await self._store.set_global(new_global, reconciled, expected_version=version)

        logger.info(
            "set_global:done admin_id=%s version=%s overrides_updated=%s",
            actor.admin_id,
            new_version,
            len(reconciled),
        )
        await self._audit.record(actor, "Commission change", "Global commission was changed")
        return dict(STATUS_OK)

    # ---- per user ----

    async def get_user_commissions(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        The user's own override, exactly as stored (unset leaves stay absent).

        None means the user does not exist; {} means no override.
        """
        user = await self._persistence.find_user(user_id)
        if user is None:
            return None
        return to_external(await self._store.get_user_override(user_id))

    async def get_user_commissions_or_global(self, user_id: str) -> Dict[str, Any]:
        """Commissions that apply to the user: override on top of global, else global."""
        override = await self._store.get_user_override(user_id)
        if override is None or override.is_empty():
            return await self.get_global()

        return to_external(overlay(await self._store.get_global(), override))

    async def set_user_commissions(
        self, user_id: str, data: ExternalCommissions, actor: ActorContext
    ) -> Dict[str, str]:
        user = await self._require_settings(user_id)

        saved = await self._store.set_user_override(user_id, to_internal(data))
        if not saved:
            raise _settings_not_found(user_id)

        logger.info("set_user_commissions user_id=%s admin_id=%s", user_id, actor.admin_id)
        await self._audit.record(
            actor,
            "User commission change",
            f"Commission of user {user.email} was changed",
            user,
        )
        return dict(STATUS_OK)

    async def reset_user_commissions(self, user_id: str, actor: ActorContext) -> Dict[str, str]:
        user = await self._require_settings(user_id)

        saved = await self._store.reset_user_override(user_id)
        if not saved:
            raise _settings_not_found(user_id)

        logger.info("reset_user_commissions user_id=%s admin_id=%s", user_id, actor.admin_id)
        await self._audit.record(
            actor,
            "User commission reset",
            f"Commission of user {user.email} was reset",
            user,
        )
        return dict(STATUS_OK)

    async def list_customized_users(self) -> List[Dict[str, Any]]:
        """Every user with a non-empty override: user_id, email and the override (external shape)."""
        overrides = await self._persistence.list_non_empty_overrides()
        users = await self._persistence.find_users(user_id for user_id, _ in overrides)

        out: List[Dict[str, Any]] = []
        for user_id, override in overrides:
            user = users.get(user_id)
            if user is None:
                logger.warning("list_customized_users:orphan_settings user_id=%s", user_id)
                continue
            out.append({"user_id": user_id, "email": user.email, "commissions": to_external(override)})

        logger.debug("list_customized_users count=%s", len(out))
        return out

    async def _require_settings(self, user_id: str) -> UserIdentity:
        user = await self._persistence.find_user(user_id)
        if user is None:
            raise NotFoundError(code="user_not_found", message="User not found", details={"user_id": user_id})
        if not await self._persistence.has_user_settings(user_id):
            raise _settings_not_found(user_id)
        return user
