# ruff: noqa: B008, TC001
from __future__ import annotations

from fastapi import APIRouter, Depends

from leaveflow.api.deps import IdentityDep, validate_tenant_scope
from leaveflow.db import SessionDep
from leaveflow.schemas.tenant import TenantSettingsResponse, UpdateTenantSettingsRequest
from leaveflow.services import tenant as tenant_service

tenant_router = APIRouter(
    prefix="/tenants/{tenant_id}/settings",
    tags=["tenant"],
    dependencies=[Depends(validate_tenant_scope)],
)


@tenant_router.get("", response_model=TenantSettingsResponse)
async def get_settings(session: SessionDep, identity: IdentityDep) -> TenantSettingsResponse:
    """Get the tenant's working days, grace window and subscription state."""
    return await tenant_service.get_tenant_settings(session, identity)


@tenant_router.put("", response_model=TenantSettingsResponse)
async def update_settings(
    payload: UpdateTenantSettingsRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> TenantSettingsResponse:
    """Update the tenant's settings (admin only)."""
    return await tenant_service.update_tenant_settings(session, identity, payload)
