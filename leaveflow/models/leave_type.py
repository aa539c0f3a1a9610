# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import TenantScoped, TimestampMixin, UUIDBase


class LeaveType(UUIDBase, TenantScoped, TimestampMixin, table=True):
    """Stable identity of a leave type (e.g. ``paid-leave``)."""

    __tablename__ = "leave_type"
    __table_args__ = (sa.UniqueConstraint("tenant_id", "key", name="uq_leave_type_tenant_key"),)

    key: str = Field(max_length=255)
    name: str = Field(max_length=255)
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})


class LeaveTypeVersion(UUIDBase, TimestampMixin, table=True):
    """Immutable settings of a leave type; a change creates a new version."""

    __tablename__ = "leave_type_version"
    __table_args__ = (sa.UniqueConstraint("leave_type_id", "version", name="uq_leave_type_version_number"),)

    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    version: int
    # Half-day units granted per yearly period.
    accrual_units_per_year: int = Field(ge=0)
    carry_over_allowed: bool = False
    carry_over_max_units: int = Field(default=0, ge=0)
    created_by: uuid.UUID
    change_reason: str | None = None
    superseded: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
