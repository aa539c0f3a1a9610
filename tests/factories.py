"""Row builders shared by the test modules.

Everything is inserted directly through the session so tests can set up a
tenant without going through the admin API.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import update

from leaveflow.models.enums import Role, SubscriptionStatus
from leaveflow.models.leave_type import LeaveType, LeaveTypeVersion
from leaveflow.models.tenant import Tenant
from leaveflow.models.user import User
from leaveflow.schemas.auth import Identity
from leaveflow.services.identity import issue_session

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlmodel import SQLModel


async def create_tenant(
    session: AsyncSession,
    *,
    name: str = "Acme",
    subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    trial_ends_at: datetime | None = None,
    cancellation_grace_days: int = 1,
    working_days: list[int] | None = None,
) -> Tenant:
    tenant = Tenant(
        name=name,
        subscription_status=subscription_status,
        trial_ends_at=trial_ends_at,
        cancellation_grace_days=cancellation_grace_days,
    )
    if working_days is not None:
        tenant.working_days = working_days
    session.add(tenant)
    await session.commit()
    return tenant


async def create_user(
    session: AsyncSession,
    tenant: Tenant,
    *,
    role: Role = Role.EMPLOYEE,
    manager: User | None = None,
    name: str | None = None,
) -> User:
    slug = uuid.uuid4().hex[:8]
    user = User(
        tenant_id=tenant.id,
        email=f"{role.lower()}-{slug}@example.com",
        name=name or f"{role.title()} {slug}",
        role=role.value,
        manager_id=manager.id if manager else None,
    )
    session.add(user)
    await session.commit()
    return user


async def create_leave_type(
    session: AsyncSession,
    tenant: Tenant,
    created_by: User,
    *,
    key: str = "vacation",
    accrual_units_per_year: int = 10,
    carry_over_allowed: bool = False,
    carry_over_max_units: int = 0,
) -> LeaveType:
    leave_type = LeaveType(tenant_id=tenant.id, key=key, name=key.title())
    session.add(leave_type)
    await session.flush()
    session.add(
        LeaveTypeVersion(
            leave_type_id=leave_type.id,
            version=1,
            accrual_units_per_year=accrual_units_per_year,
            carry_over_allowed=carry_over_allowed,
            carry_over_max_units=carry_over_max_units,
            created_by=created_by.id,
        )
    )
    await session.commit()
    return leave_type


def identity_of(user: User) -> Identity:
    return Identity(tenant_id=user.tenant_id, user_id=user.id, role=Role(user.role))


async def auth_headers(session: AsyncSession, user: User, ttl: timedelta = timedelta(hours=1)) -> dict[str, str]:
    """Issue a bearer session for ``user`` and return the request headers."""
    token = await issue_session(session, user, ttl)
    await session.commit()
    return {"Authorization": f"Bearer {token}", "X-Tenant-Id": str(user.tenant_id)}


@dataclass
class Org:
    """A tenant with an admin, a manager, two reports, an unmanaged employee and a leave type."""

    tenant: Tenant
    admin: User
    manager: User
    employee: User
    teammate: User
    outsider: User
    leave_type: LeaveType

    @property
    def url(self) -> str:
        return f"/tenants/{self.tenant.id}"


async def build_org(
    session: AsyncSession,
    *,
    name: str = "Acme",
    accrual_units_per_year: int = 10,
    **tenant_kwargs: object,
) -> Org:
    tenant = await create_tenant(session, name=name, **tenant_kwargs)  # type: ignore[arg-type]
    admin = await create_user(session, tenant, role=Role.ADMIN)
    manager = await create_user(session, tenant, role=Role.MANAGER)
    employee = await create_user(session, tenant, manager=manager)
    teammate = await create_user(session, tenant, manager=manager)
    outsider = await create_user(session, tenant)
    leave_type = await create_leave_type(session, tenant, admin, accrual_units_per_year=accrual_units_per_year)
    return Org(
        tenant=tenant,
        admin=admin,
        manager=manager,
        employee=employee,
        teammate=teammate,
        outsider=outsider,
        leave_type=leave_type,
    )


async def update_row(session: AsyncSession, row: SQLModel, **values: object) -> None:
    """Persist column changes to a (possibly detached) seeded row and mirror them on it."""
    model = type(row)
    await session.execute(update(model).where(model.id == row.id).values(**values))  # type: ignore[attr-defined]
    await session.commit()
    for name, value in values.items():
        setattr(row, name, value)
