"""
Who is performing an admin action.

The acting admin is passed explicitly into every mutating service call so audit
entries never depend on request-global state. Authentication happens upstream
(gateway / proxy); here we only read the identity it forwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from feedesk.core.errors import UnauthorizedError


@dataclass(frozen=True)
class ActorContext:
    admin_id: str
    admin_email: Optional[str] = None


async def get_actor_context(
    x_admin_id: Optional[str] = Header(default=None),
    x_admin_email: Optional[str] = Header(default=None),
) -> ActorContext:
    admin_id = (x_admin_id or "").strip()
    if not admin_id:
        raise UnauthorizedError(code="admin_identity_missing", message="X-Admin-Id header is required")

    email = (x_admin_email or "").strip() or None
    return ActorContext(admin_id=admin_id, admin_email=email)
