# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from leaveflow.exceptions import NotFound, ValidationFailed
from leaveflow.models.enums import AuditAction, AuditEntityType, SubscriptionStatus
from leaveflow.models.tenant import Tenant
from leaveflow.models.user import User
from leaveflow.schemas.tenant import TenantSettingsResponse
from leaveflow.services.access import Action, Resource, require, require_any
from leaveflow.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leaveflow.schemas.auth import Identity
    from leaveflow.schemas.tenant import UpdateTenantSettingsRequest

logger = logging.getLogger(__name__)


async def _get_tenant_or_404(session: AsyncSession, tenant_id: uuid.UUID) -> Tenant:
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    return tenant


async def _build_settings_response(session: AsyncSession, tenant: Tenant) -> TenantSettingsResponse:
    count_result = await session.execute(
        select(func.count())
        .select_from(User)
        .where(col(User.tenant_id) == tenant.id, col(User.deleted_at).is_(None))
    )
    return TenantSettingsResponse(
        id=tenant.id,
        name=tenant.name,
        working_days=list(tenant.working_days),
        cancellation_grace_days=tenant.cancellation_grace_days,
        subscription_status=SubscriptionStatus(tenant.subscription_status),
        trial_ends_at=tenant.trial_ends_at,
        employee_count=count_result.scalar_one(),
        created_at=tenant.created_at,
    )


async def get_tenant_settings(session: AsyncSession, identity: Identity) -> TenantSettingsResponse:
    """Return the caller's tenant settings; any member may read them."""
    require_any(
        identity,
        (Action.READ_OWN, Action.READ_ALL),
        Resource(tenant_id=identity.tenant_id, owner_id=identity.user_id),
    )
    tenant = await _get_tenant_or_404(session, identity.tenant_id)
    return await _build_settings_response(session, tenant)


async def update_tenant_settings(
    session: AsyncSession,
    identity: Identity,
    payload: UpdateTenantSettingsRequest,
) -> TenantSettingsResponse:
    """Change the tenant's name, working days or cancellation grace window (admin only).

    Working days only affect requests drafted afterwards; existing requests
    keep the units they were created with.
    """
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise ValidationFailed("No changes provided")

    tenant = await _get_tenant_or_404(session, identity.tenant_id)
    before = model_to_audit_dict(tenant)
    for field, value in changes.items():
        setattr(tenant, field, value)

    await session.flush()
    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.TENANT,
        entity_id=tenant.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(tenant),
    )
    await session.commit()
    logger.info("Tenant %s settings updated by %s: %s", tenant.id, identity.user_id, sorted(changes))
    return await _build_settings_response(session, tenant)
