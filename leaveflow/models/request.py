# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import TenantScoped, TimestampMixin, UUIDBase
from leaveflow.models.enums import RequestStatus


class LeaveRequest(UUIDBase, TenantScoped, TimestampMixin, table=True):
    """An employee's leave request with approval workflow state.

    ``status`` and ``version`` are written only by the workflow service, with
    every write conditioned on the version it read.
    """

    __tablename__ = "leave_request"
    __table_args__ = (
        sa.Index("ix_request_tenant_status", "tenant_id", "status"),
        sa.Index("ix_request_user_dates", "user_id", "start_date", "end_date"),
    )

    user_id: uuid.UUID = Field(foreign_key="app_user.id", index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    leave_type_version_id: uuid.UUID = Field(foreign_key="leave_type_version.id")
    start_date: date
    end_date: date
    half_day_start: bool = False
    half_day_end: bool = False
    units: int
    period_year: int
    status: str = Field(
        default=RequestStatus.DRAFT, max_length=50, index=True, sa_column_kwargs={"server_default": "DRAFT"}
    )
    comment: str | None = None
    decision_note: str | None = None
    approver_id: uuid.UUID | None = None
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    submitted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    cancelled_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
