# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leaveflow.api.deps import IdentityDep, validate_tenant_scope
from leaveflow.db import SessionDep
from leaveflow.schemas.user import CreateUserRequest, UpdateUserRequest, UserListResponse, UserResponse
from leaveflow.services import user as user_service

users_router = APIRouter(
    prefix="/tenants/{tenant_id}/users",
    tags=["users"],
    dependencies=[Depends(validate_tenant_scope)],
)


@users_router.get("/me", response_model=UserResponse)
async def get_me(
    session: SessionDep,
    identity: IdentityDep,
) -> UserResponse:
    """Get the caller's own user record."""
    return await user_service.get_user(session, identity, identity.user_id)


@users_router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: CreateUserRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> UserResponse:
    """Onboard a user (admin only)."""
    return await user_service.create_user(session, identity, payload)


@users_router.get("", response_model=UserListResponse)
async def list_users(
    session: SessionDep,
    identity: IdentityDep,
    include_deleted: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> UserListResponse:
    """List users: the whole tenant for admins, direct reports for managers."""
    return await user_service.list_users(
        session, identity, include_deleted=include_deleted, offset=offset, limit=limit
    )


@users_router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    session: SessionDep,
    identity: IdentityDep,
) -> UserResponse:
    """Get a user."""
    return await user_service.get_user(session, identity, user_id)


@users_router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: uuid.UUID,
    payload: UpdateUserRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> UserResponse:
    """Update a user's name, role, manager or active flag (admin only)."""
    return await user_service.update_user(session, identity, user_id, payload)


@users_router.delete("/{user_id}", response_model=UserResponse)
async def delete_user(
    user_id: uuid.UUID,
    session: SessionDep,
    identity: IdentityDep,
) -> UserResponse:
    """Soft-delete a user (admin only)."""
    return await user_service.delete_user(session, identity, user_id)
