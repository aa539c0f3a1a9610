# ruff: noqa: TC003
from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import TimestampMixin, UUIDBase
from leaveflow.models.enums import SubscriptionStatus


def _default_working_days() -> list[int]:
    return [1, 2, 3, 4, 5]


class Tenant(UUIDBase, TimestampMixin, table=True):
    """A company account; the unit of data isolation."""

    __tablename__ = "tenant"

    name: str = Field(max_length=255)
    # ISO weekday numbers, Monday=1.
    working_days: list[int] = Field(default_factory=_default_working_days, sa_type=sa.JSON)
    cancellation_grace_days: int = Field(default=1, ge=0, sa_column_kwargs={"server_default": "1"})
    subscription_status: str = Field(
        default=SubscriptionStatus.TRIALING, max_length=50, sa_column_kwargs={"server_default": "TRIALING"}
    )
    trial_ends_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
