# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status

from leaveflow.api.deps import IdentityDep, WorkflowDep, validate_tenant_scope
from leaveflow.models.enums import RequestStatus
from leaveflow.schemas.request import (
    CancelPayload,
    CreateDraftPayload,
    DecisionPayload,
    RequestListResponse,
    RequestResponse,
    RequestScope,
    TransitionPayload,
)

requests_router = APIRouter(
    prefix="/tenants/{tenant_id}/requests",
    tags=["requests"],
    dependencies=[Depends(validate_tenant_scope)],
)


@requests_router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_draft(
    payload: CreateDraftPayload,
    workflow: WorkflowDep,
    identity: IdentityDep,
) -> RequestResponse:
    """Create a leave request in DRAFT for the caller."""
    return await workflow.create_draft(identity, payload)


@requests_router.get("", response_model=RequestListResponse)
async def list_requests(
    workflow: WorkflowDep,
    identity: IdentityDep,
    scope: RequestScope = Query(default="own"),
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    leave_type_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RequestListResponse:
    """List leave requests visible to the caller under the given scope."""
    return await workflow.list_requests(identity, scope, status_filter, leave_type_id, offset, limit)


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    workflow: WorkflowDep,
    identity: IdentityDep,
) -> RequestResponse:
    """Get a single leave request."""
    return await workflow.get(identity, request_id)


@requests_router.post("/{request_id}/submit", response_model=RequestResponse)
async def submit_request(
    request_id: uuid.UUID,
    workflow: WorkflowDep,
    identity: IdentityDep,
    payload: TransitionPayload | None = None,
) -> RequestResponse:
    """Submit a draft for approval, reserving its units."""
    expected_version = payload.expected_version if payload else None
    return await workflow.submit(identity, request_id, expected_version)


@requests_router.post("/{request_id}/decision", response_model=RequestResponse)
async def decide_request(
    request_id: uuid.UUID,
    payload: DecisionPayload,
    workflow: WorkflowDep,
    identity: IdentityDep,
) -> RequestResponse:
    """Approve or reject a pending request (owner's manager or admin)."""
    return await workflow.decide(identity, request_id, payload.decision, payload.note, payload.expected_version)


@requests_router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    workflow: WorkflowDep,
    identity: IdentityDep,
    payload: CancelPayload | None = None,
) -> RequestResponse:
    """Cancel a pending request, or an approved one within the grace window."""
    expected_version = payload.expected_version if payload else None
    return await workflow.cancel(identity, request_id, expected_version)


@requests_router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_request(
    request_id: uuid.UUID,
    workflow: WorkflowDep,
    identity: IdentityDep,
    expected_version: int | None = Query(default=None, ge=1),
) -> Response:
    """Discard a draft (owner or admin)."""
    await workflow.discard(identity, request_id, expected_version)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
