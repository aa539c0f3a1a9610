# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from leaveflow.exceptions import NotFound
from leaveflow.models.base import as_utc
from leaveflow.models.enums import AuditAction, AuditEntityType, LedgerEntryType, LedgerSourceType
from leaveflow.models.user import User
from leaveflow.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    LedgerEntryResponse,
    LedgerListResponse,
    RebuildResponse,
)
from leaveflow.services.access import Action, Resource, require, require_any
from leaveflow.services.audit import model_to_audit_dict, write_audit_log
from leaveflow.services.leave_type import get_leave_type_or_404
from leaveflow.services.ledger import BalanceKey, BalanceLedger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leaveflow.models.balance import Balance
    from leaveflow.models.ledger import LedgerEntry
    from leaveflow.schemas.auth import Identity
    from leaveflow.schemas.balance import CreateAdjustmentRequest

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def build_balance_response(balance: Balance) -> BalanceResponse:
    return BalanceResponse(
        user_id=balance.user_id,
        leave_type_id=balance.leave_type_id,
        period_year=balance.period_year,
        accrued=balance.accrued,
        consumed=balance.consumed,
        pending=balance.pending,
        available=balance.available,
        version=balance.version,
        updated_at=as_utc(balance.updated_at),
    )


def _build_ledger_entry_response(entry: LedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        leave_type_id=entry.leave_type_id,
        period_year=entry.period_year,
        entry_type=LedgerEntryType(entry.entry_type),
        amount_units=entry.amount_units,
        source_type=LedgerSourceType(entry.source_type),
        source_id=entry.source_id,
        metadata_json=entry.metadata_json,
        created_at=entry.created_at,
    )


async def _require_user_visible(session: AsyncSession, identity: Identity, user_id: uuid.UUID) -> User:
    """Balances are visible to their owner, the owner's manager and admins."""
    user = await session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    require_any(
        identity,
        (Action.READ_OWN, Action.READ_TEAM, Action.READ_ALL),
        Resource(tenant_id=user.tenant_id, owner_id=user.id, owner_manager_id=user.manager_id),
    )
    return user


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_user_balances(
    session: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
    period_year: int,
) -> BalanceListResponse:
    """Return the user's balances for a year, one per opened leave type."""
    await _require_user_visible(session, identity, user_id)
    balances = await BalanceLedger(session).list_balances(identity.tenant_id, user_id, period_year)
    items = [build_balance_response(b) for b in balances]
    return BalanceListResponse(items=items, total=len(items))


async def get_user_ledger(
    session: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    period_year: int,
    offset: int = 0,
    limit: int = 50,
) -> LedgerListResponse:
    """Paginated ledger entries of one balance row."""
    await _require_user_visible(session, identity, user_id)
    entries, total = await BalanceLedger(session).list_entries(
        BalanceKey(identity.tenant_id, user_id, leave_type_id, period_year), offset, limit
    )
    return LedgerListResponse(items=[_build_ledger_entry_response(e) for e in entries], total=total)


# ---------------------------------------------------------------------------
# Write path - admin operations
# ---------------------------------------------------------------------------


async def open_user_period(
    session: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    period_year: int,
) -> BalanceResponse:
    """Open (or return) a user's balance row for a year (admin only)."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))
    await _require_user_visible(session, identity, user_id)
    await get_leave_type_or_404(session, identity.tenant_id, leave_type_id)

    try:
        balance = await BalanceLedger(session).ensure_period(
            BalanceKey(identity.tenant_id, user_id, leave_type_id, period_year)
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return build_balance_response(balance)


async def create_adjustment(
    session: AsyncSession,
    identity: Identity,
    payload: CreateAdjustmentRequest,
) -> LedgerEntryResponse:
    """Post a signed admin adjustment to a user's accrued units."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))
    await _require_user_visible(session, identity, payload.user_id)
    await get_leave_type_or_404(session, identity.tenant_id, payload.leave_type_id)

    try:
        entry = await BalanceLedger(session).adjust(
            BalanceKey(identity.tenant_id, payload.user_id, payload.leave_type_id, payload.period_year),
            payload.amount_units,
            actor_id=identity.user_id,
            reason=payload.reason,
        )
        await write_audit_log(
            session,
            tenant_id=identity.tenant_id,
            actor_id=identity.user_id,
            entity_type=AuditEntityType.ADJUSTMENT,
            entity_id=entry.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(entry),
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return _build_ledger_entry_response(entry)


async def rebuild_balance(
    session: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    period_year: int,
) -> RebuildResponse:
    """Replay history into a balance row and report whether it had drifted."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))
    await _require_user_visible(session, identity, user_id)

    ledger = BalanceLedger(session)
    key = BalanceKey(identity.tenant_id, user_id, leave_type_id, period_year)
    try:
        before = await ledger.get_balance(key)
        before_json = model_to_audit_dict(before) if before is not None else None
        result = await ledger.rebuild(key)
        await write_audit_log(
            session,
            tenant_id=identity.tenant_id,
            actor_id=identity.user_id,
            entity_type=AuditEntityType.BALANCE,
            entity_id=user_id,
            action=AuditAction.REBUILD,
            before_json=before_json,
            after_json=model_to_audit_dict(result.balance),
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return RebuildResponse(balance=build_balance_response(result.balance), drifted=result.drifted)
