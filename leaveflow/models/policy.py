from __future__ import annotations

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import TenantScoped, TimestampMixin, UUIDBase


class LeavePolicy(UUIDBase, TenantScoped, TimestampMixin, table=True):
    """Tenant-wide limits checked against every new request while active."""

    __tablename__ = "leave_policy"
    __table_args__ = (sa.UniqueConstraint("tenant_id", "name", name="uq_leave_policy_tenant_name"),)

    name: str = Field(max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    # Working days, not half-day units.
    max_consecutive_days: int | None = Field(default=None, ge=1)
    # ISO dates (YYYY-MM-DD) on which no leave may be taken.
    blackout_dates: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})
