# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Literal, Self

from pydantic import BaseModel, Field, model_validator

from leaveflow.models.enums import Decision, RequestStatus

RequestScope = Literal["own", "team", "all"]

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class CreateDraftPayload(BaseModel):
    """Request body for creating a leave request in DRAFT."""

    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    half_day_start: bool = False
    half_day_end: bool = False
    comment: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self


class TransitionPayload(BaseModel):
    """Optional optimistic-concurrency guard for a transition."""

    expected_version: int | None = Field(default=None, ge=1)


class DecisionPayload(TransitionPayload):
    """Request body for approve/reject decisions."""

    decision: Decision
    note: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _require_reject_reason(self) -> Self:
        if self.decision == Decision.REJECT and not (self.note and self.note.strip()):
            msg = "A reason is required to reject a request"
            raise ValueError(msg)
        return self


class CancelPayload(TransitionPayload):
    """Request body for cancelling a request."""


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    leave_type_version_id: uuid.UUID
    start_date: date
    end_date: date
    half_day_start: bool
    half_day_end: bool
    units: int
    period_year: int
    status: RequestStatus
    comment: str | None
    decision_note: str | None
    approver_id: uuid.UUID | None
    version: int
    created_at: datetime
    submitted_at: datetime | None
    decided_at: datetime | None
    cancelled_at: datetime | None


class RequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[RequestResponse]
    total: int
