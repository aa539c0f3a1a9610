# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator


def _unique_sorted(value: list[date] | None) -> list[date] | None:
    return None if value is None else sorted(set(value))


class CreatePolicyRequest(BaseModel):
    """Request body for creating a leave policy (admin only)."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    max_consecutive_days: int | None = Field(default=None, ge=1)
    blackout_dates: list[date] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("blackout_dates")
    @classmethod
    def _normalize_blackout_dates(cls, value: list[date] | None) -> list[date] | None:
        return _unique_sorted(value)


class UpdatePolicyRequest(BaseModel):
    """Partial update of a leave policy; ``clear_max_consecutive_days`` lifts the limit."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    max_consecutive_days: int | None = Field(default=None, ge=1)
    clear_max_consecutive_days: bool = False
    blackout_dates: list[date] | None = None
    is_active: bool | None = None

    @field_validator("blackout_dates")
    @classmethod
    def _normalize_blackout_dates(cls, value: list[date] | None) -> list[date] | None:
        return _unique_sorted(value)


class PolicyResponse(BaseModel):
    """Response schema for a leave policy."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    description: str | None
    max_consecutive_days: int | None
    blackout_dates: list[date]
    is_active: bool
    created_at: datetime


class PolicyListResponse(BaseModel):
    """Paginated list of leave policies."""

    items: list[PolicyResponse]
    total: int
