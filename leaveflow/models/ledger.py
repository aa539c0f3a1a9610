# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import TenantScoped, UUIDBase, now_utc


class LedgerEntry(UUIDBase, TenantScoped, table=True):
    """Append-only ledger entry that records every balance-affecting event."""

    __tablename__ = "ledger_entry"
    __table_args__ = (
        sa.Index("ix_ledger_user_type_year", "user_id", "leave_type_id", "period_year"),
        sa.UniqueConstraint("source_type", "source_id", "entry_type", name="uq_ledger_idempotency"),
    )

    user_id: uuid.UUID = Field(foreign_key="app_user.id", index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False),
    )
    period_year: int
    entry_type: str = Field(max_length=50)
    amount_units: int
    source_type: str = Field(max_length=50)
    source_id: str = Field(max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    created_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
