"""Leave policies: tenant-wide limits on the length and dates of requests.

Every active policy applies to every request of its tenant. A request may not
span more working days than ``max_consecutive_days`` and may not touch a
blackout date, whether or not that date is a working day.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leaveflow.exceptions import AppError, NotFound, ValidationFailed
from leaveflow.models.enums import AuditAction, AuditEntityType
from leaveflow.models.policy import LeavePolicy
from leaveflow.schemas.policy import PolicyListResponse, PolicyResponse
from leaveflow.services.access import Action, Resource, require, require_any
from leaveflow.services.audit import model_to_audit_dict, write_audit_log
from leaveflow.services.duration import UNITS_PER_DAY

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leaveflow.schemas.auth import Identity
    from leaveflow.schemas.policy import CreatePolicyRequest, UpdatePolicyRequest

logger = logging.getLogger(__name__)


def _build_policy_response(policy: LeavePolicy) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        tenant_id=policy.tenant_id,
        name=policy.name,
        description=policy.description,
        max_consecutive_days=policy.max_consecutive_days,
        blackout_dates=[date.fromisoformat(d) for d in policy.blackout_dates],
        is_active=policy.is_active,
        created_at=policy.created_at,
    )


def _require_reader(identity: Identity) -> None:
    # Admins and managers; READ_TEAM on a resource the caller manages.
    require_any(
        identity,
        (Action.READ_TEAM, Action.READ_ALL),
        Resource(tenant_id=identity.tenant_id, owner_manager_id=identity.user_id),
    )


async def _get_policy_or_404(session: AsyncSession, tenant_id: uuid.UUID, policy_id: uuid.UUID) -> LeavePolicy:
    result = await session.execute(
        select(LeavePolicy).where(
            col(LeavePolicy.id) == policy_id,
            col(LeavePolicy.tenant_id) == tenant_id,
        )
    )
    policy = result.scalar_one_or_none()
    if policy is None:
        raise NotFound("Policy not found")
    return policy


async def _flush_unique_name(session: AsyncSession) -> None:
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError("Policy with this name already exists", status_code=409) from None


# ---------------------------------------------------------------------------
# Enforcement
# ---------------------------------------------------------------------------


async def check_request_policies(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    start_date: date,
    end_date: date,
    units: int,
) -> None:
    """Raise ValidationFailed naming the first active policy the request breaks."""
    result = await session.execute(
        select(LeavePolicy)
        .where(col(LeavePolicy.tenant_id) == tenant_id, col(LeavePolicy.is_active).is_(True))
        .order_by(col(LeavePolicy.name))
    )
    span = {(start_date + timedelta(days=i)).isoformat() for i in range((end_date - start_date).days + 1)}

    for policy in result.scalars().all():
        limit = policy.max_consecutive_days
        if limit is not None and units > limit * UNITS_PER_DAY:
            raise ValidationFailed(f"Request exceeds the {limit} consecutive day limit of policy '{policy.name}'")
        blocked = sorted(span.intersection(policy.blackout_dates))
        if blocked:
            raise ValidationFailed(f"Request covers blackout date {blocked[0]} of policy '{policy.name}'")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_policy(
    session: AsyncSession,
    identity: Identity,
    payload: CreatePolicyRequest,
) -> PolicyResponse:
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    policy = LeavePolicy(
        tenant_id=identity.tenant_id,
        name=payload.name,
        description=payload.description,
        max_consecutive_days=payload.max_consecutive_days,
        blackout_dates=[d.isoformat() for d in payload.blackout_dates],
        is_active=payload.is_active,
    )
    session.add(policy)
    await _flush_unique_name(session)

    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.POLICY,
        entity_id=policy.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(policy),
    )
    await session.commit()
    logger.info("Policy %s (%s) created by %s", policy.id, policy.name, identity.user_id)
    return _build_policy_response(policy)


async def list_policies(
    session: AsyncSession,
    identity: Identity,
    *,
    include_inactive: bool = True,
    offset: int = 0,
    limit: int = 50,
) -> PolicyListResponse:
    _require_reader(identity)

    filters = [col(LeavePolicy.tenant_id) == identity.tenant_id]
    if not include_inactive:
        filters.append(col(LeavePolicy.is_active).is_(True))

    count_result = await session.execute(select(func.count()).select_from(LeavePolicy).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeavePolicy)
        .where(*filters)
        .order_by(col(LeavePolicy.created_at).desc(), col(LeavePolicy.name))
        .offset(offset)
        .limit(limit)
    )
    return PolicyListResponse(items=[_build_policy_response(p) for p in result.scalars().all()], total=total)


async def get_policy(session: AsyncSession, identity: Identity, policy_id: uuid.UUID) -> PolicyResponse:
    _require_reader(identity)
    return _build_policy_response(await _get_policy_or_404(session, identity.tenant_id, policy_id))


async def update_policy(
    session: AsyncSession,
    identity: Identity,
    policy_id: uuid.UUID,
    payload: UpdatePolicyRequest,
) -> PolicyResponse:
    """Change a policy in place. New limits apply to requests drafted or submitted afterwards."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    policy = await _get_policy_or_404(session, identity.tenant_id, policy_id)
    before = model_to_audit_dict(policy)

    if payload.name is not None:
        policy.name = payload.name
    if payload.description is not None:
        policy.description = payload.description
    if payload.clear_max_consecutive_days:
        policy.max_consecutive_days = None
    elif payload.max_consecutive_days is not None:
        policy.max_consecutive_days = payload.max_consecutive_days
    if payload.blackout_dates is not None:
        policy.blackout_dates = [d.isoformat() for d in payload.blackout_dates]
    if payload.is_active is not None:
        policy.is_active = payload.is_active

    await _flush_unique_name(session)
    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.POLICY,
        entity_id=policy.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(policy),
    )
    await session.commit()
    return _build_policy_response(policy)


async def delete_policy(session: AsyncSession, identity: Identity, policy_id: uuid.UUID) -> None:
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    policy = await _get_policy_or_404(session, identity.tenant_id, policy_id)
    before = model_to_audit_dict(policy)
    await session.delete(policy)
    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.POLICY,
        entity_id=policy_id,
        action=AuditAction.DELETE,
        before_json=before,
    )
    await session.commit()
    logger.info("Policy %s deleted by %s", policy_id, identity.user_id)
