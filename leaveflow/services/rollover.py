"""Annual rollover.

Opens every active user's balance for a new year, one row per active leave
type, posting the yearly allocation, then moves any capped carry-over out of
the prior year. Rows that are already open (a request may have opened the
year early) still receive their carry-over. A run can be repeated safely.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leaveflow.exceptions import AppError
from leaveflow.models.leave_type import LeaveType
from leaveflow.models.user import User
from leaveflow.services.ledger import BalanceKey, BalanceLedger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class RolloverRunResult:
    """Result of an annual rollover run."""

    period_year: int
    opened: int = 0
    carried_over: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[dict[str, object]] = field(default_factory=list)


async def _find_targets(
    session: AsyncSession,
    tenant_id: uuid.UUID | None,
) -> list[tuple[uuid.UUID, uuid.UUID, uuid.UUID]]:
    """Return (tenant_id, user_id, leave_type_id) for live users and active leave types."""
    filters = [
        col(User.is_active).is_(True),
        col(User.deleted_at).is_(None),
        col(LeaveType.is_active).is_(True),
    ]
    if tenant_id is not None:
        filters.append(col(User.tenant_id) == tenant_id)

    result = await session.execute(
        select(col(User.tenant_id), col(User.id), col(LeaveType.id))
        .join(LeaveType, col(LeaveType.tenant_id) == col(User.tenant_id))
        .where(*filters)
        .order_by(col(User.tenant_id), col(User.id))
    )
    return [(row[0], row[1], row[2]) for row in result.all()]


async def run_annual_rollover(
    session: AsyncSession,
    period_year: int,
    tenant_id: uuid.UUID | None = None,
) -> RolloverRunResult:
    """Open ``period_year`` balances for every target, committing each row on its own."""
    run = RolloverRunResult(period_year=period_year)
    ledger = BalanceLedger(session)

    for row_tenant_id, user_id, leave_type_id in await _find_targets(session, tenant_id):
        key = BalanceKey(row_tenant_id, user_id, leave_type_id, period_year)
        target = {
            "tenant_id": str(row_tenant_id),
            "user_id": str(user_id),
            "leave_type_id": str(leave_type_id),
        }
        try:
            opened = await ledger.get_balance(key) is None
            if opened:
                await ledger.open_period(key)
            carried = await ledger.carry_over(key)
            await session.commit()
        except AppError as exc:
            await session.rollback()
            run.errors += 1
            run.details.append({**target, "error": type(exc).__name__, "message": exc.message})
            logger.warning("Rollover %d failed for user %s: %s", period_year, user_id, exc.message)
            continue

        if not opened and not carried:
            run.skipped += 1
            continue

        run.opened += int(opened)
        run.carried_over += int(bool(carried))
        balance = await ledger.get_balance(key)
        run.details.append({**target, "accrued": balance.accrued if balance else 0, "carried_over": carried})

    logger.info(
        "Rollover %d complete: opened=%d carried_over=%d skipped=%d errors=%d",
        period_year,
        run.opened,
        run.carried_over,
        run.skipped,
        run.errors,
    )
    return run
