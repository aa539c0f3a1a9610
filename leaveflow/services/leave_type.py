# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leaveflow.exceptions import AppError, NotFound
from leaveflow.models.enums import AuditAction, AuditEntityType
from leaveflow.models.leave_type import LeaveType, LeaveTypeVersion
from leaveflow.schemas.leave_type import (
    LeaveTypeListResponse,
    LeaveTypeResponse,
    LeaveTypeVersionListResponse,
    LeaveTypeVersionResponse,
)
from leaveflow.services.access import Action, Resource, require
from leaveflow.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leaveflow.schemas.auth import Identity
    from leaveflow.schemas.leave_type import CreateLeaveTypeRequest, UpdateLeaveTypeRequest


def _build_version_response(version: LeaveTypeVersion) -> LeaveTypeVersionResponse:
    return LeaveTypeVersionResponse(
        id=version.id,
        leave_type_id=version.leave_type_id,
        version=version.version,
        accrual_units_per_year=version.accrual_units_per_year,
        carry_over_allowed=version.carry_over_allowed,
        carry_over_max_units=version.carry_over_max_units,
        created_by=version.created_by,
        change_reason=version.change_reason,
        superseded=version.superseded,
        created_at=version.created_at,
    )


def _build_leave_type_response(
    leave_type: LeaveType,
    current_version: LeaveTypeVersion | None,
) -> LeaveTypeResponse:
    return LeaveTypeResponse(
        id=leave_type.id,
        tenant_id=leave_type.tenant_id,
        key=leave_type.key,
        name=leave_type.name,
        is_active=leave_type.is_active,
        created_at=leave_type.created_at,
        current_version=_build_version_response(current_version) if current_version else None,
    )


async def get_leave_type_or_404(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> LeaveType:
    """Fetch a leave type scoped to the tenant. Raises NotFound if absent."""
    result = await session.execute(
        select(LeaveType).where(
            col(LeaveType.id) == leave_type_id,
            col(LeaveType.tenant_id) == tenant_id,
        )
    )
    leave_type = result.scalar_one_or_none()
    if leave_type is None:
        raise NotFound("Leave type not found")
    return leave_type


async def get_current_version(
    session: AsyncSession,
    leave_type_id: uuid.UUID,
) -> LeaveTypeVersion | None:
    """Return the version that is not yet superseded."""
    result = await session.execute(
        select(LeaveTypeVersion)
        .where(
            col(LeaveTypeVersion.leave_type_id) == leave_type_id,
            col(LeaveTypeVersion.superseded).is_(False),
        )
        .order_by(col(LeaveTypeVersion.version).desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_leave_type(
    session: AsyncSession,
    identity: Identity,
    payload: CreateLeaveTypeRequest,
) -> LeaveTypeResponse:
    """Create a leave type with its first version."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    existing = await session.execute(
        select(LeaveType).where(
            col(LeaveType.tenant_id) == identity.tenant_id,
            col(LeaveType.key) == payload.key,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise AppError("Leave type with this key already exists", status_code=409)

    leave_type = LeaveType(tenant_id=identity.tenant_id, key=payload.key, name=payload.name)
    session.add(leave_type)
    await session.flush()

    version = LeaveTypeVersion(
        leave_type_id=leave_type.id,
        version=1,
        accrual_units_per_year=payload.settings.accrual_units_per_year,
        carry_over_allowed=payload.settings.carry_over_allowed,
        carry_over_max_units=payload.settings.carry_over_max_units,
        created_by=identity.user_id,
        change_reason=payload.settings.change_reason,
    )
    session.add(version)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError("Leave type with this key already exists", status_code=409) from None

    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(leave_type),
    )
    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE_VERSION,
        entity_id=version.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(version),
    )

    await session.commit()
    await session.refresh(leave_type)
    await session.refresh(version)
    return _build_leave_type_response(leave_type, version)


async def get_leave_type(
    session: AsyncSession,
    identity: Identity,
    leave_type_id: uuid.UUID,
) -> LeaveTypeResponse:
    leave_type = await get_leave_type_or_404(session, identity.tenant_id, leave_type_id)
    current_version = await get_current_version(session, leave_type.id)
    return _build_leave_type_response(leave_type, current_version)


async def list_leave_types(
    session: AsyncSession,
    identity: Identity,
    *,
    include_inactive: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> LeaveTypeListResponse:
    """List the tenant's leave types with their current versions."""
    filters = [col(LeaveType.tenant_id) == identity.tenant_id]
    if not include_inactive:
        filters.append(col(LeaveType.is_active).is_(True))

    count_result = await session.execute(select(func.count()).select_from(LeaveType).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveType).where(*filters).order_by(col(LeaveType.created_at), col(LeaveType.key)).offset(offset).limit(limit)
    )
    items: list[LeaveTypeResponse] = []
    for leave_type in result.scalars().all():
        current_version = await get_current_version(session, leave_type.id)
        items.append(_build_leave_type_response(leave_type, current_version))

    return LeaveTypeListResponse(items=items, total=total)


async def update_leave_type(
    session: AsyncSession,
    identity: Identity,
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypeRequest,
) -> LeaveTypeResponse:
    """Change settings by superseding the current version with a new one.

    Versions are never edited beyond the ``superseded`` flag, so requests keep
    pointing at the settings they were created under.
    """
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    leave_type = await get_leave_type_or_404(session, identity.tenant_id, leave_type_id)
    current_version = await get_current_version(session, leave_type.id)
    if current_version is None:
        raise NotFound("Leave type has no current version")

    before_version_dict = model_to_audit_dict(current_version)
    current_version.superseded = True

    new_version = LeaveTypeVersion(
        leave_type_id=leave_type.id,
        version=current_version.version + 1,
        accrual_units_per_year=payload.settings.accrual_units_per_year,
        carry_over_allowed=payload.settings.carry_over_allowed,
        carry_over_max_units=payload.settings.carry_over_max_units,
        created_by=identity.user_id,
        change_reason=payload.settings.change_reason,
    )
    session.add(new_version)
    try:
        await session.flush()
    except IntegrityError:
        # Another admin created the same version number first.
        await session.rollback()
        raise AppError("Leave type was modified concurrently, retry", status_code=409) from None

    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE_VERSION,
        entity_id=current_version.id,
        action=AuditAction.UPDATE,
        before_json=before_version_dict,
        after_json=model_to_audit_dict(current_version),
    )
    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE_VERSION,
        entity_id=new_version.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(new_version),
    )

    await session.commit()
    await session.refresh(leave_type)
    await session.refresh(new_version)
    return _build_leave_type_response(leave_type, new_version)


async def deactivate_leave_type(
    session: AsyncSession,
    identity: Identity,
    leave_type_id: uuid.UUID,
) -> LeaveTypeResponse:
    """Hide a leave type from new requests. Existing requests and balances remain."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    leave_type = await get_leave_type_or_404(session, identity.tenant_id, leave_type_id)
    before = model_to_audit_dict(leave_type)
    leave_type.is_active = False
    await session.flush()

    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.DELETE,
        before_json=before,
        after_json=model_to_audit_dict(leave_type),
    )
    await session.commit()
    await session.refresh(leave_type)
    current_version = await get_current_version(session, leave_type.id)
    return _build_leave_type_response(leave_type, current_version)


async def list_leave_type_versions(
    session: AsyncSession,
    identity: Identity,
    leave_type_id: uuid.UUID,
    offset: int = 0,
    limit: int = 50,
) -> LeaveTypeVersionListResponse:
    """List all versions of a leave type, newest first."""
    await get_leave_type_or_404(session, identity.tenant_id, leave_type_id)

    count_result = await session.execute(
        select(func.count())
        .select_from(LeaveTypeVersion)
        .where(col(LeaveTypeVersion.leave_type_id) == leave_type_id)
    )
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveTypeVersion)
        .where(col(LeaveTypeVersion.leave_type_id) == leave_type_id)
        .order_by(col(LeaveTypeVersion.version).desc())
        .offset(offset)
        .limit(limit)
    )
    return LeaveTypeVersionListResponse(
        items=[_build_version_response(v) for v in result.scalars().all()],
        total=total,
    )
