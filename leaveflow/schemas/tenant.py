# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from leaveflow.models.enums import SubscriptionStatus


class UpdateTenantSettingsRequest(BaseModel):
    """Partial update of the tenant's settings (admin only)."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    # ISO weekday numbers, Monday=1 .. Sunday=7.
    working_days: list[int] | None = Field(default=None, min_length=1)
    cancellation_grace_days: int | None = Field(default=None, ge=0, le=365)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            msg = "name must not be blank"
            raise ValueError(msg)
        return value

    @field_validator("working_days")
    @classmethod
    def _normalize_working_days(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return None
        if any(day < 1 or day > 7 for day in value):
            msg = "working days must be between 1 (Monday) and 7 (Sunday)"
            raise ValueError(msg)
        return sorted(set(value))


class TenantSettingsResponse(BaseModel):
    """The tenant's settings with its headcount."""

    id: uuid.UUID
    name: str
    working_days: list[int]
    cancellation_grace_days: int
    subscription_status: SubscriptionStatus
    trial_ends_at: datetime | None
    employee_count: int
    created_at: datetime
