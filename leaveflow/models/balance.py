# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leaveflow.models.base import now_utc


class Balance(SQLModel, table=True):
    """Derived balance row, one per (user, leave type, year).

    Mutated only through conditional UPDATE statements in the ledger service,
    so ``accrued >= consumed + pending`` holds after every write.
    """

    __tablename__ = "leave_balance"
    __table_args__ = (
        sa.CheckConstraint("pending >= 0 AND consumed >= 0", name="ck_balance_non_negative"),
        sa.CheckConstraint("accrued >= consumed + pending", name="ck_balance_covered"),
    )

    tenant_id: uuid.UUID = Field(foreign_key="tenant.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="app_user.id", primary_key=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), primary_key=True, nullable=False
        ),
    )
    period_year: int = Field(primary_key=True)
    accrued: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    consumed: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    pending: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    updated_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )

    @property
    def available(self) -> int:
        return self.accrued - self.consumed - self.pending
