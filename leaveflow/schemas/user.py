# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from leaveflow.models.enums import Role


class CreateUserRequest(BaseModel):
    """Request body for onboarding a user into the tenant."""

    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(min_length=1, max_length=255)
    role: Role = Role.EMPLOYEE
    manager_id: uuid.UUID | None = None


class UpdateUserRequest(BaseModel):
    """Partial update of a user. Only admins may change ``role``."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    role: Role | None = None
    manager_id: uuid.UUID | None = None
    clear_manager: bool = False
    is_active: bool | None = None


class UserResponse(BaseModel):
    """Response schema for a user."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    name: str
    role: Role
    manager_id: uuid.UUID | None
    is_active: bool
    deleted_at: datetime | None
    created_at: datetime


class UserListResponse(BaseModel):
    """Paginated list of users."""

    items: list[UserResponse]
    total: int
