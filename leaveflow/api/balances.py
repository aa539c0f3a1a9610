# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status

from leaveflow.api.deps import IdentityDep, validate_tenant_scope
from leaveflow.db import SessionDep
from leaveflow.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    CreateAdjustmentRequest,
    LedgerEntryResponse,
    LedgerListResponse,
    RebuildResponse,
)
from leaveflow.services import balance as balance_service

user_balance_router = APIRouter(
    prefix="/tenants/{tenant_id}/users/{user_id}/balances",
    tags=["balances"],
    dependencies=[Depends(validate_tenant_scope)],
)

adjustment_router = APIRouter(
    prefix="/tenants/{tenant_id}/adjustments",
    tags=["balances"],
    dependencies=[Depends(validate_tenant_scope)],
)


def _current_year() -> int:
    return date.today().year


@user_balance_router.get("", response_model=BalanceListResponse)
async def get_user_balances(
    user_id: uuid.UUID,
    session: SessionDep,
    identity: IdentityDep,
    year: int | None = Query(default=None, ge=2000, le=9999),
) -> BalanceListResponse:
    """Get a user's balances for a year."""
    return await balance_service.get_user_balances(session, identity, user_id, year or _current_year())


@user_balance_router.get("/{leave_type_id}/ledger", response_model=LedgerListResponse)
async def get_user_ledger(
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    session: SessionDep,
    identity: IdentityDep,
    year: int | None = Query(default=None, ge=2000, le=9999),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LedgerListResponse:
    """Get paginated ledger entries for a user's balance."""
    return await balance_service.get_user_ledger(
        session, identity, user_id, leave_type_id, year or _current_year(), offset, limit
    )


@user_balance_router.post("/{leave_type_id}/{year}/open", response_model=BalanceResponse)
async def open_user_period(
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    session: SessionDep,
    identity: IdentityDep,
) -> BalanceResponse:
    """Open a user's balance for a year with its allocation (admin only)."""
    return await balance_service.open_user_period(session, identity, user_id, leave_type_id, year)


@user_balance_router.post("/{leave_type_id}/{year}/rebuild", response_model=RebuildResponse)
async def rebuild_balance(
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    session: SessionDep,
    identity: IdentityDep,
) -> RebuildResponse:
    """Recompute a balance from its history (admin only)."""
    return await balance_service.rebuild_balance(session, identity, user_id, leave_type_id, year)


@adjustment_router.post("", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    payload: CreateAdjustmentRequest,
    session: SessionDep,
    identity: IdentityDep,
) -> LedgerEntryResponse:
    """Create an admin balance adjustment."""
    return await balance_service.create_adjustment(session, identity, payload)
