"""
/admin/commission endpoints:
- global commissions (read / replace)
- per-user commission overrides (read / effective read / replace / reset)
- users with custom commissions

Commission payloads are returned as plain dicts so Decimal leaves are encoded
as JSON numbers.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from feedesk.core.actor import ActorContext, get_actor_context
from feedesk.core.errors import NotFoundError
from feedesk.features.audit.service import AuditLog, MongoAuditLog
from feedesk.features.commissions.schemas import CommissionsUpdateRequest, StatusResponse
from feedesk.features.commissions.service import CommissionService

router = APIRouter(prefix="/admin/commission", tags=["commissions"])


async def get_audit_log(request: Request) -> AuditLog:
    return MongoAuditLog(request.app.state.db)


async def get_commission_service(
    request: Request,
    audit: AuditLog = Depends(get_audit_log),
) -> CommissionService:
    return CommissionService(request.app.state.commissions_store, audit)


@router.get("")
async def get_global_endpoint(service: CommissionService = Depends(get_commission_service)):
    return await service.get_global()


@router.put("", response_model=StatusResponse)
async def set_global_endpoint(
    payload: CommissionsUpdateRequest,
    service: CommissionService = Depends(get_commission_service),
    actor: ActorContext = Depends(get_actor_context),
):
    return await service.set_global(payload.data, actor)


@router.get("/users")
async def list_customized_users_endpoint(service: CommissionService = Depends(get_commission_service)):
    return await service.list_customized_users()


@router.get("/users/{user_id}")
async def get_user_commissions_endpoint(user_id: str, service: CommissionService = Depends(get_commission_service)):
    result = await service.get_user_commissions(user_id)
    if result is None:
        raise NotFoundError(code="user_not_found", message="User not found", details={"user_id": user_id})
    return result


@router.get("/users/{user_id}/effective")
async def get_effective_user_commissions_endpoint(
    user_id: str, service: CommissionService = Depends(get_commission_service)
):
    return await service.get_user_commissions_or_global(user_id)


@router.put("/users/{user_id}", response_model=StatusResponse)
async def set_user_commissions_endpoint(
    user_id: str,
    payload: CommissionsUpdateRequest,
    service: CommissionService = Depends(get_commission_service),
    actor: ActorContext = Depends(get_actor_context),
):
    return await service.set_user_commissions(user_id, payload.data, actor)


@router.delete("/users/{user_id}", response_model=StatusResponse)
async def reset_user_commissions_endpoint(
    user_id: str,
    service: CommissionService = Depends(get_commission_service),
    actor: ActorContext = Depends(get_actor_context),
):
    return await service.reset_user_commissions(user_id, actor)
