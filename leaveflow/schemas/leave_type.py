# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator

# ---------------------------------------------------------------------------
# Version settings
# ---------------------------------------------------------------------------


class LeaveTypeSettingsInput(BaseModel):
    """Settings captured by a leave type version. Units are half-days."""

    accrual_units_per_year: int = Field(ge=0, le=2 * 366)
    carry_over_allowed: bool = False
    carry_over_max_units: int = Field(default=0, ge=0)
    change_reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_carry_over(self) -> Self:
        if not self.carry_over_allowed and self.carry_over_max_units:
            msg = "carry_over_max_units requires carry_over_allowed"
            raise ValueError(msg)
        return self


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateLeaveTypeRequest(BaseModel):
    """Request body for creating a leave type with its first version."""

    key: str = Field(min_length=1, max_length=255, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    name: str = Field(min_length=1, max_length=255)
    settings: LeaveTypeSettingsInput


class UpdateLeaveTypeRequest(BaseModel):
    """Request body for changing leave type settings (creates a new version)."""

    settings: LeaveTypeSettingsInput


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class LeaveTypeVersionResponse(BaseModel):
    """Response schema for a leave type version."""

    id: uuid.UUID
    leave_type_id: uuid.UUID
    version: int
    accrual_units_per_year: int
    carry_over_allowed: bool
    carry_over_max_units: int
    created_by: uuid.UUID
    change_reason: str | None
    superseded: bool
    created_at: datetime


class LeaveTypeResponse(BaseModel):
    """Response schema for a leave type with its current version."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    key: str
    name: str
    is_active: bool
    created_at: datetime
    current_version: LeaveTypeVersionResponse | None


class LeaveTypeListResponse(BaseModel):
    """Paginated list of leave types."""

    items: list[LeaveTypeResponse]
    total: int


class LeaveTypeVersionListResponse(BaseModel):
    """Paginated list of leave type versions."""

    items: list[LeaveTypeVersionResponse]
    total: int
