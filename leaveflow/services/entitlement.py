# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import select
from sqlmodel import col

from leaveflow.models.base import as_utc, now_utc
from leaveflow.models.enums import SubscriptionStatus
from leaveflow.models.tenant import Tenant

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@runtime_checkable
class EntitlementCheck(Protocol):
    """Interface answering whether a tenant may still use the product."""

    async def is_active(self, tenant_id: uuid.UUID) -> bool:
        """Return True when the tenant's subscription or trial is current."""
        ...


def is_subscription_active(status: str, trial_ends_at: datetime | None, now: datetime | None = None) -> bool:
    """ACTIVE subscriptions, and trials that have not ended yet, are entitled."""
    if status == SubscriptionStatus.ACTIVE:
        return True
    if status == SubscriptionStatus.TRIALING:
        return trial_ends_at is not None and as_utc(trial_ends_at) > (now or now_utc())
    return False


class TenantEntitlementCheck:
    """Reads the subscription state mirrored on the tenant row."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def is_active(self, tenant_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(col(Tenant.subscription_status), col(Tenant.trial_ends_at)).where(col(Tenant.id) == tenant_id)
        )
        row = result.one_or_none()
        if row is None:
            return False
        return is_subscription_active(row.subscription_status, row.trial_ends_at)


class InMemoryEntitlementCheck:
    """In-memory stub: every tenant is entitled unless marked expired."""

    def __init__(self) -> None:
        self._expired: set[uuid.UUID] = set()

    def expire(self, tenant_id: uuid.UUID) -> None:
        self._expired.add(tenant_id)

    def restore(self, tenant_id: uuid.UUID) -> None:
        self._expired.discard(tenant_id)

    async def is_active(self, tenant_id: uuid.UUID) -> bool:
        return tenant_id not in self._expired


_entitlement_check: EntitlementCheck | None = None


def get_entitlement_check(session: AsyncSession) -> EntitlementCheck:
    """Return the configured check, defaulting to the tenant-row check bound to ``session``."""
    if _entitlement_check is not None:
        return _entitlement_check
    return TenantEntitlementCheck(session)


def set_entitlement_check(check: EntitlementCheck | None) -> None:
    """Override the check (for testing or production wiring); None restores the default."""
    global _entitlement_check
    _entitlement_check = check
