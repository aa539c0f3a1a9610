# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leaveflow.exceptions import AppError, NotFound, ValidationFailed
from leaveflow.models.base import now_utc
from leaveflow.models.enums import AuditAction, AuditEntityType, Role
from leaveflow.models.user import User
from leaveflow.schemas.user import UserListResponse, UserResponse
from leaveflow.services.access import Action, Resource, authorize, require, require_any
from leaveflow.services.audit import model_to_audit_dict, write_audit_log
from leaveflow.services.identity import revoke_user_sessions

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leaveflow.schemas.auth import Identity
    from leaveflow.schemas.user import CreateUserRequest, UpdateUserRequest

logger = logging.getLogger(__name__)


def _build_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
        name=user.name,
        role=Role(user.role),
        manager_id=user.manager_id,
        is_active=user.is_active,
        deleted_at=user.deleted_at,
        created_at=user.created_at,
    )


async def _get_user_or_404(session: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID) -> User:
    result = await session.execute(
        select(User).where(
            col(User.id) == user_id,
            col(User.tenant_id) == tenant_id,
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


async def _validate_manager(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    manager_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
) -> None:
    """A manager must be a live user of the same tenant with at least the MANAGER role."""
    if manager_id == user_id:
        raise ValidationFailed("A user cannot be their own manager")
    try:
        manager = await _get_user_or_404(session, tenant_id, manager_id)
    except NotFound:
        raise ValidationFailed("Manager not found in this tenant") from None
    if manager.deleted_at is not None or not manager.is_active:
        raise ValidationFailed("Manager is not active")
    if not Role(manager.role).includes(Role.MANAGER):
        raise ValidationFailed("Assigned manager must have the MANAGER or ADMIN role")


async def create_user(
    session: AsyncSession,
    identity: Identity,
    payload: CreateUserRequest,
) -> UserResponse:
    """Onboard a user into the caller's tenant (admin only)."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    email = payload.email.strip().lower()
    existing = await session.execute(
        select(User).where(
            col(User.tenant_id) == identity.tenant_id,
            col(User.email) == email,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise AppError("A user with this email already exists", status_code=409)

    if payload.manager_id is not None:
        await _validate_manager(session, identity.tenant_id, payload.manager_id)

    user = User(
        tenant_id=identity.tenant_id,
        email=email,
        name=payload.name,
        role=payload.role.value,
        manager_id=payload.manager_id,
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError("A user with this email already exists", status_code=409) from None

    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.USER,
        entity_id=user.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(user),
    )
    await session.commit()
    logger.info("User %s onboarded into tenant %s as %s", user.id, identity.tenant_id, user.role)
    return _build_user_response(user)


async def get_user(
    session: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
) -> UserResponse:
    """Return a user to themselves, their manager, or an admin."""
    user = await _get_user_or_404(session, identity.tenant_id, user_id)
    require_any(
        identity,
        (Action.READ_OWN, Action.READ_TEAM, Action.READ_ALL),
        Resource(tenant_id=user.tenant_id, owner_id=user.id, owner_manager_id=user.manager_id),
    )
    return _build_user_response(user)


async def list_users(
    session: AsyncSession,
    identity: Identity,
    *,
    include_deleted: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> UserListResponse:
    """Admins see the whole tenant; managers see their direct reports."""
    filters = [col(User.tenant_id) == identity.tenant_id]
    if not authorize(identity, Action.READ_ALL, Resource(tenant_id=identity.tenant_id)).allowed:
        require(
            identity,
            Action.READ_TEAM,
            Resource(tenant_id=identity.tenant_id, owner_manager_id=identity.user_id),
        )
        filters.append(col(User.manager_id) == identity.user_id)
    if not include_deleted:
        filters.append(col(User.deleted_at).is_(None))

    count_result = await session.execute(select(func.count()).select_from(User).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(User).where(*filters).order_by(col(User.name), col(User.email)).offset(offset).limit(limit)
    )
    return UserListResponse(
        items=[_build_user_response(u) for u in result.scalars().all()],
        total=total,
    )


async def update_user(
    session: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
    payload: UpdateUserRequest,
) -> UserResponse:
    """Change a user's name, role, manager link or active flag (admin only)."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    user = await _get_user_or_404(session, identity.tenant_id, user_id)
    if user.deleted_at is not None:
        raise ValidationFailed("Deleted users cannot be modified")

    before = model_to_audit_dict(user)

    if payload.name is not None:
        user.name = payload.name
    if payload.role is not None:
        if user.id == identity.user_id and payload.role != Role.ADMIN:
            raise ValidationFailed("Admins cannot remove their own admin role")
        user.role = payload.role.value
    if payload.clear_manager:
        user.manager_id = None
    elif payload.manager_id is not None:
        await _validate_manager(session, identity.tenant_id, payload.manager_id, user.id)
        user.manager_id = payload.manager_id
    if payload.is_active is not None:
        user.is_active = payload.is_active

    await session.flush()
    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.USER,
        entity_id=user.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(user),
    )
    await session.commit()
    return _build_user_response(user)


async def delete_user(
    session: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
) -> UserResponse:
    """Soft-delete a user and revoke their sessions; history stays attributable."""
    require(identity, Action.MANAGE_SETTINGS, Resource(tenant_id=identity.tenant_id))

    user = await _get_user_or_404(session, identity.tenant_id, user_id)
    if user.id == identity.user_id:
        raise ValidationFailed("Admins cannot delete themselves")
    if user.deleted_at is not None:
        return _build_user_response(user)

    before = model_to_audit_dict(user)
    user.deleted_at = now_utc()
    user.is_active = False
    revoked = await revoke_user_sessions(session, user.id)

    # Reports of the deleted user lose their manager link.
    reports = await session.execute(
        select(User).where(col(User.tenant_id) == identity.tenant_id, col(User.manager_id) == user.id)
    )
    for report in reports.scalars().all():
        report.manager_id = None

    await session.flush()
    await write_audit_log(
        session,
        tenant_id=identity.tenant_id,
        actor_id=identity.user_id,
        entity_type=AuditEntityType.USER,
        entity_id=user.id,
        action=AuditAction.DELETE,
        before_json=before,
        after_json=model_to_audit_dict(user),
    )
    await session.commit()
    logger.info("User %s soft-deleted by %s; %d sessions revoked", user.id, identity.user_id, revoked)
    return _build_user_response(user)
