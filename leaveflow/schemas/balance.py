# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from leaveflow.models.enums import LedgerEntryType, LedgerSourceType

# ---------------------------------------------------------------------------
# Balance response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    """Balance of one leave type for one year, in half-day units."""

    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    period_year: int
    accrued: int
    consumed: int
    pending: int
    available: int
    version: int
    updated_at: datetime | None


class BalanceListResponse(BaseModel):
    """All balances of a user for a year."""

    items: list[BalanceResponse]
    total: int


class RebuildResponse(BaseModel):
    """Outcome of replaying history into a balance row."""

    balance: BalanceResponse
    drifted: bool


# ---------------------------------------------------------------------------
# Ledger response schemas
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    """A single ledger entry."""

    id: uuid.UUID
    leave_type_id: uuid.UUID
    period_year: int
    entry_type: LedgerEntryType
    amount_units: int
    source_type: LedgerSourceType
    source_id: str
    metadata_json: dict[str, Any] | None
    created_at: datetime


class LedgerListResponse(BaseModel):
    """Paginated ledger entries."""

    items: list[LedgerEntryResponse]
    total: int


# ---------------------------------------------------------------------------
# Adjustment request schema
# ---------------------------------------------------------------------------


class CreateAdjustmentRequest(BaseModel):
    """Request body for an admin balance adjustment."""

    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    period_year: int = Field(ge=2000, le=9999)
    amount_units: int = Field(
        description="Signed half-day units: positive to add, negative to deduct",
    )
    reason: str = Field(min_length=1, max_length=1000)
