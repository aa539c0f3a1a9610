# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status

from leaveflow.api.deps import IdentityDep, validate_tenant_scope
from leaveflow.db import SessionDep
from leaveflow.schemas.policy import (
    CreatePolicyRequest,
    PolicyListResponse,
    PolicyResponse,
    UpdatePolicyRequest,
)
from leaveflow.services import policy as policy_service

policies_router = APIRouter(
    prefix="/tenants/{tenant_id}/policies",
    tags=["policies"],
    dependencies=[Depends(validate_tenant_scope)],
)


@policies_router.post("", response_model=PolicyResponse, status_code=status.HTTP_201_CREATED)
async def create_policy(
    payload: CreatePolicyRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> PolicyResponse:
    """Create a leave policy (admin only)."""
    return await policy_service.create_policy(session, identity, payload)


@policies_router.get("", response_model=PolicyListResponse)
async def list_policies(
    session: SessionDep,
    identity: IdentityDep,
    include_inactive: bool = Query(default=True),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> PolicyListResponse:
    """List the tenant's leave policies (admins and managers)."""
    return await policy_service.list_policies(
        session, identity, include_inactive=include_inactive, offset=offset, limit=limit
    )


@policies_router.get("/{policy_id}", response_model=PolicyResponse)
async def get_policy(policy_id: uuid.UUID, session: SessionDep, identity: IdentityDep) -> PolicyResponse:
    """Get a leave policy (admins and managers)."""
    return await policy_service.get_policy(session, identity, policy_id)


@policies_router.put("/{policy_id}", response_model=PolicyResponse)
async def update_policy(
    policy_id: uuid.UUID,
    payload: UpdatePolicyRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> PolicyResponse:
    """Update a leave policy (admin only)."""
    return await policy_service.update_policy(session, identity, policy_id, payload)


@policies_router.delete("/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_policy(policy_id: uuid.UUID, session: SessionDep, identity: IdentityDep) -> Response:
    """Delete a leave policy (admin only)."""
    await policy_service.delete_policy(session, identity, policy_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
