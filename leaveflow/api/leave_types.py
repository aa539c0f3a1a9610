# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leaveflow.api.deps import IdentityDep, validate_tenant_scope
from leaveflow.db import SessionDep
from leaveflow.schemas.leave_type import (
    CreateLeaveTypeRequest,
    LeaveTypeListResponse,
    LeaveTypeResponse,
    LeaveTypeVersionListResponse,
    UpdateLeaveTypeRequest,
)
from leaveflow.services import leave_type as leave_type_service

router = APIRouter(
    prefix="/tenants/{tenant_id}/leave-types",
    tags=["leave-types"],
    dependencies=[Depends(validate_tenant_scope)],
)


@router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_type(
    payload: CreateLeaveTypeRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> LeaveTypeResponse:
    """Create a leave type with its initial version (admin only)."""
    return await leave_type_service.create_leave_type(session, identity, payload)


@router.get("", response_model=LeaveTypeListResponse)
async def list_leave_types(
    session: SessionDep,
    identity: IdentityDep,
    include_inactive: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveTypeListResponse:
    """List the tenant's leave types."""
    return await leave_type_service.list_leave_types(
        session, identity, include_inactive=include_inactive, offset=offset, limit=limit
    )


@router.get("/{leave_type_id}", response_model=LeaveTypeResponse)
async def get_leave_type(
    leave_type_id: uuid.UUID,
    session: SessionDep,
    identity: IdentityDep,
) -> LeaveTypeResponse:
    """Get a leave type with its current version."""
    return await leave_type_service.get_leave_type(session, identity, leave_type_id)


@router.put("/{leave_type_id}", response_model=LeaveTypeResponse)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypeRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> LeaveTypeResponse:
    """Change a leave type's settings by creating a new version (admin only)."""
    return await leave_type_service.update_leave_type(session, identity, leave_type_id, payload)


@router.delete("/{leave_type_id}", response_model=LeaveTypeResponse)
async def deactivate_leave_type(
    leave_type_id: uuid.UUID,
    session: SessionDep,
    identity: IdentityDep,
) -> LeaveTypeResponse:
    """Deactivate a leave type (admin only)."""
    return await leave_type_service.deactivate_leave_type(session, identity, leave_type_id)


@router.get("/{leave_type_id}/versions", response_model=LeaveTypeVersionListResponse)
async def list_leave_type_versions(
    leave_type_id: uuid.UUID,
    session: SessionDep,
    identity: IdentityDep,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveTypeVersionListResponse:
    """List all versions of a leave type."""
    return await leave_type_service.list_leave_type_versions(session, identity, leave_type_id, offset, limit)
