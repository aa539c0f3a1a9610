"""Balance ledger.

Every balance mutation is a single conditional UPDATE on the balance row, so
the check and the write happen atomically in the database and the row itself
serializes concurrent writers. Each mutation also appends a ledger entry whose
(source_type, source_id, entry_type) key is unique, which makes a replayed
posting fail instead of double counting.

Methods flush but never commit; the caller owns the transaction.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import FlushError
from sqlmodel import col

from leaveflow.exceptions import ConcurrentModification, InsufficientBalance, NotFound, ValidationFailed
from leaveflow.models.balance import Balance
from leaveflow.models.base import now_utc
from leaveflow.models.enums import LedgerEntryType, LedgerSourceType, RequestStatus
from leaveflow.models.ledger import LedgerEntry
from leaveflow.models.request import LeaveRequest
from leaveflow.services.leave_type import get_current_version

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

logger = logging.getLogger(__name__)

# Entry types that make up the accrued total.
ALLOCATION_TYPES = (
    LedgerEntryType.ACCRUAL.value,
    LedgerEntryType.CARRYOVER.value,
    LedgerEntryType.ADJUSTMENT.value,
)


@dataclass(frozen=True)
class BalanceKey:
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    period_year: int

    @property
    def period_source_id(self) -> str:
        return f"{self.user_id}:{self.leave_type_id}:{self.period_year}"


@dataclass(frozen=True)
class Reservation:
    """A claim on ``pending`` units, identified by the request that holds it."""

    key: BalanceKey
    units: int
    request_id: uuid.UUID

    @classmethod
    def for_request(cls, request: LeaveRequest) -> Reservation:
        return cls(
            key=BalanceKey(
                tenant_id=request.tenant_id,
                user_id=request.user_id,
                leave_type_id=request.leave_type_id,
                period_year=request.period_year,
            ),
            units=request.units,
            request_id=request.id,
        )


@dataclass(frozen=True)
class RebuildResult:
    balance: Balance
    drifted: bool


class BalanceLedger:
    """Accrued, consumed and pending units per (user, leave type, year)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get_balance(self, key: BalanceKey) -> Balance | None:
        """Load the balance row, overwriting any stale copy in the session."""
        result = await self._session.execute(
            select(Balance).where(*_key_filter(key)).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_balances(self, tenant_id: uuid.UUID, user_id: uuid.UUID, period_year: int) -> list[Balance]:
        result = await self._session.execute(
            select(Balance)
            .where(
                col(Balance.tenant_id) == tenant_id,
                col(Balance.user_id) == user_id,
                col(Balance.period_year) == period_year,
            )
            .order_by(col(Balance.leave_type_id))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_entries(
        self,
        key: BalanceKey,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[LedgerEntry], int]:
        """Return a page of ledger entries for the period, newest first, and the total."""
        filters = [
            col(LedgerEntry.tenant_id) == key.tenant_id,
            col(LedgerEntry.user_id) == key.user_id,
            col(LedgerEntry.leave_type_id) == key.leave_type_id,
            col(LedgerEntry.period_year) == key.period_year,
        ]
        count_result = await self._session.execute(select(func.count()).select_from(LedgerEntry).where(*filters))
        total = count_result.scalar_one()

        result = await self._session.execute(
            select(LedgerEntry)
            .where(*filters)
            .order_by(col(LedgerEntry.created_at).desc(), col(LedgerEntry.id))
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # -----------------------------------------------------------------------
    # Period lifecycle
    # -----------------------------------------------------------------------

    async def ensure_period(self, key: BalanceKey) -> Balance:
        """Return the balance row for the period, opening it first if needed."""
        balance = await self.get_balance(key)
        if balance is not None:
            return balance
        return await self.open_period(key)

    async def open_period(self, key: BalanceKey) -> Balance:
        """Create the period's row with the current leave type version's allocation.

        The allocation is posted as ACCRUAL. Carry-over is a separate step, see
        ``carry_over``. Losing a race to open the same period raises
        ConcurrentModification.
        """
        version = await get_current_version(self._session, key.leave_type_id)
        if version is None:
            raise NotFound("Leave type has no current version")

        allocation = version.accrual_units_per_year
        balance = Balance(
            tenant_id=key.tenant_id,
            user_id=key.user_id,
            leave_type_id=key.leave_type_id,
            period_year=key.period_year,
            accrued=allocation,
        )
        self._session.add(balance)
        self._session.add(
            self._entry(
                key,
                LedgerEntryType.ACCRUAL,
                allocation,
                LedgerSourceType.SYSTEM,
                key.period_source_id,
                {"leave_type_version_id": str(version.id)},
            )
        )
        await self._flush(f"Balance period {key.period_year} was opened concurrently, retry")
        logger.info(
            "Opened period %d for user %s leave type %s: allocation=%d",
            key.period_year,
            key.user_id,
            key.leave_type_id,
            allocation,
        )
        return balance

    async def carry_over(self, key: BalanceKey) -> int:
        """Move the prior year's unused units (capped) into ``key``'s period.

        The units leave the prior year and enter this one as a pair of
        CARRYOVER entries, so they can only be spent once. Pending units in
        the prior year stay there. Runs at most once per period: a repeat
        returns 0, as does a leave type without carry-over or an unopened
        prior year. Both periods must exist.
        """
        version = await get_current_version(self._session, key.leave_type_id)
        if version is None:
            raise NotFound("Leave type has no current version")
        if not version.carry_over_allowed or version.carry_over_max_units <= 0:
            return 0

        existing = await self._session.execute(
            select(col(LedgerEntry.id)).where(
                col(LedgerEntry.source_type) == LedgerSourceType.SYSTEM.value,
                col(LedgerEntry.source_id) == key.period_source_id,
                col(LedgerEntry.entry_type) == LedgerEntryType.CARRYOVER.value,
            )
        )
        if existing.first() is not None:
            return 0

        prior_key = BalanceKey(key.tenant_id, key.user_id, key.leave_type_id, key.period_year - 1)
        prior = await self.get_balance(prior_key)
        if prior is None:
            return 0
        units = min(max(prior.available, 0), version.carry_over_max_units)
        if units == 0:
            return 0

        rowcount = await self._conditional_update(
            prior_key,
            col(Balance.accrued) - col(Balance.consumed) - col(Balance.pending) >= units,
            accrued=col(Balance.accrued) - units,
        )
        if rowcount == 0:
            raise ConcurrentModification(f"Balance for {prior_key.period_year} changed during carry-over, retry")
        rowcount = await self._conditional_update(key, None, accrued=col(Balance.accrued) + units)
        if rowcount == 0:
            raise NotFound("Balance not found")

        self._session.add(
            self._entry(
                prior_key,
                LedgerEntryType.CARRYOVER,
                -units,
                LedgerSourceType.SYSTEM,
                f"{key.period_source_id}:out",
                {"to_year": key.period_year},
            )
        )
        self._session.add(
            self._entry(
                key,
                LedgerEntryType.CARRYOVER,
                units,
                LedgerSourceType.SYSTEM,
                key.period_source_id,
                {"from_year": prior_key.period_year},
            )
        )
        await self._flush(f"Carry-over into {key.period_year} was already posted")
        logger.info(
            "Carried %d units from %d to %d for user %s leave type %s",
            units,
            prior_key.period_year,
            key.period_year,
            key.user_id,
            key.leave_type_id,
        )
        return units

    # -----------------------------------------------------------------------
    # Reservation lifecycle
    # -----------------------------------------------------------------------

    async def reserve(self, key: BalanceKey, units: int, request_id: uuid.UUID) -> Reservation:
        """Move ``units`` from available to pending, or raise InsufficientBalance.

        The availability check and the increment are one statement, so of
        several concurrent reservations only those that fit succeed.
        """
        if units <= 0:
            raise ValidationFailed("Reserved units must be positive")

        rowcount = await self._conditional_update(
            key,
            col(Balance.accrued) - col(Balance.consumed) - col(Balance.pending) >= units,
            pending=col(Balance.pending) + units,
        )
        if rowcount == 0:
            raise InsufficientBalance(f"Not enough balance to reserve {units} units")

        self._session.add(
            self._entry(key, LedgerEntryType.HOLD, -units, LedgerSourceType.REQUEST, str(request_id))
        )
        await self._flush("Request already holds a reservation")
        return Reservation(key=key, units=units, request_id=request_id)

    async def commit(self, reservation: Reservation) -> None:
        """Turn a reservation into consumed units."""
        units = reservation.units
        rowcount = await self._conditional_update(
            reservation.key,
            col(Balance.pending) >= units,
            pending=col(Balance.pending) - units,
            consumed=col(Balance.consumed) + units,
        )
        if rowcount == 0:
            raise ConcurrentModification("Reservation is no longer held")

        source_id = str(reservation.request_id)
        self._session.add(
            self._entry(reservation.key, LedgerEntryType.HOLD_RELEASE, units, LedgerSourceType.REQUEST, source_id)
        )
        self._session.add(
            self._entry(reservation.key, LedgerEntryType.USAGE, -units, LedgerSourceType.REQUEST, source_id)
        )
        await self._flush("Reservation was already settled")

    async def release(self, reservation: Reservation) -> None:
        """Return reserved units to available."""
        units = reservation.units
        rowcount = await self._conditional_update(
            reservation.key,
            col(Balance.pending) >= units,
            pending=col(Balance.pending) - units,
        )
        if rowcount == 0:
            raise ConcurrentModification("Reservation is no longer held")

        self._session.add(
            self._entry(
                reservation.key,
                LedgerEntryType.HOLD_RELEASE,
                units,
                LedgerSourceType.REQUEST,
                str(reservation.request_id),
            )
        )
        await self._flush("Reservation was already settled")

    async def release_consumed(self, reservation: Reservation) -> None:
        """Return consumed units to available after an approved request is cancelled."""
        units = reservation.units
        rowcount = await self._conditional_update(
            reservation.key,
            col(Balance.consumed) >= units,
            consumed=col(Balance.consumed) - units,
        )
        if rowcount == 0:
            raise ConcurrentModification("Consumed units are no longer recorded")

        self._session.add(
            self._entry(
                reservation.key,
                LedgerEntryType.USAGE_REVERSAL,
                units,
                LedgerSourceType.REQUEST,
                str(reservation.request_id),
            )
        )
        await self._flush("Usage was already reversed")

    # -----------------------------------------------------------------------
    # Administration
    # -----------------------------------------------------------------------

    async def adjust(
        self,
        key: BalanceKey,
        amount_units: int,
        *,
        actor_id: uuid.UUID,
        reason: str,
    ) -> LedgerEntry:
        """Add a signed amount to ``accrued``; a deduction may not uncover consumed or pending units."""
        if amount_units == 0:
            raise ValidationFailed("Adjustment amount must be non-zero")

        await self.ensure_period(key)
        rowcount = await self._conditional_update(
            key,
            col(Balance.accrued) + amount_units >= col(Balance.consumed) + col(Balance.pending),
            accrued=col(Balance.accrued) + amount_units,
        )
        if rowcount == 0:
            raise InsufficientBalance("Adjustment would leave consumed and pending units uncovered")

        entry_id = uuid.uuid4()
        entry = self._entry(
            key,
            LedgerEntryType.ADJUSTMENT,
            amount_units,
            LedgerSourceType.ADMIN,
            str(entry_id),
            {"reason": reason, "adjusted_by": str(actor_id)},
        )
        entry.id = entry_id
        self._session.add(entry)
        await self._flush("Adjustment was already recorded")
        return entry

    async def rebuild(self, key: BalanceKey) -> RebuildResult:
        """Recompute the row from allocation entries and request history.

        ``accrued`` is the sum of ACCRUAL, CARRYOVER and ADJUSTMENT entries;
        ``consumed`` and ``pending`` are the units of the period's APPROVED and
        PENDING requests. The row is overwritten and ``drifted`` reports whether
        it disagreed.
        """
        current = await self.get_balance(key)
        if current is None:
            raise NotFound("Balance not found")

        accrued_result = await self._session.execute(
            select(func.coalesce(func.sum(col(LedgerEntry.amount_units)), 0)).where(
                col(LedgerEntry.tenant_id) == key.tenant_id,
                col(LedgerEntry.user_id) == key.user_id,
                col(LedgerEntry.leave_type_id) == key.leave_type_id,
                col(LedgerEntry.period_year) == key.period_year,
                col(LedgerEntry.entry_type).in_(ALLOCATION_TYPES),
            )
        )
        accrued = int(accrued_result.scalar_one())

        usage_result = await self._session.execute(
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (col(LeaveRequest.status) == RequestStatus.APPROVED.value, col(LeaveRequest.units)),
                            else_=0,
                        )
                    ),
                    0,
                ).label("consumed"),
                func.coalesce(
                    func.sum(
                        case(
                            (col(LeaveRequest.status) == RequestStatus.PENDING.value, col(LeaveRequest.units)),
                            else_=0,
                        )
                    ),
                    0,
                ).label("pending"),
            ).where(
                col(LeaveRequest.tenant_id) == key.tenant_id,
                col(LeaveRequest.user_id) == key.user_id,
                col(LeaveRequest.leave_type_id) == key.leave_type_id,
                col(LeaveRequest.period_year) == key.period_year,
            )
        )
        row = usage_result.one()
        consumed, pending = int(row.consumed), int(row.pending)

        if accrued < consumed + pending:
            raise ValidationFailed(
                f"History does not cover its usage: accrued={accrued} consumed={consumed} pending={pending}"
            )

        drifted = (current.accrued, current.consumed, current.pending) != (accrued, consumed, pending)
        if drifted:
            logger.warning(
                "Balance drift for user %s leave type %s year %d: stored=(%d, %d, %d) replayed=(%d, %d, %d)",
                key.user_id,
                key.leave_type_id,
                key.period_year,
                current.accrued,
                current.consumed,
                current.pending,
                accrued,
                consumed,
                pending,
            )

        await self._conditional_update(key, None, accrued=accrued, consumed=consumed, pending=pending)
        balance = await self.get_balance(key)
        if balance is None:
            raise NotFound("Balance not found")
        return RebuildResult(balance=balance, drifted=drifted)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _conditional_update(
        self,
        key: BalanceKey,
        condition: ColumnElement[bool] | None,
        **values: Any,
    ) -> int:
        """UPDATE the row when ``condition`` holds; return the number of rows written."""
        stmt = update(Balance).where(*_key_filter(key))
        if condition is not None:
            stmt = stmt.where(condition)
        stmt = stmt.values(
            version=col(Balance.version) + 1,
            updated_at=now_utc(),
            **values,
        ).execution_options(synchronize_session=False)
        result = await self._session.execute(stmt)
        return result.rowcount  # ty: ignore[unresolved-attribute]

    def _entry(
        self,
        key: BalanceKey,
        entry_type: LedgerEntryType,
        amount_units: int,
        source_type: LedgerSourceType,
        source_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            tenant_id=key.tenant_id,
            user_id=key.user_id,
            leave_type_id=key.leave_type_id,
            period_year=key.period_year,
            entry_type=entry_type.value,
            amount_units=amount_units,
            source_type=source_type.value,
            source_id=source_id,
            metadata_json=metadata,
        )

    async def _flush(self, conflict_message: str) -> None:
        try:
            await self._session.flush()
        except (IntegrityError, FlushError) as exc:
            raise ConcurrentModification(conflict_message) from exc


def _key_filter(key: BalanceKey) -> list[ColumnElement[bool]]:
    return [
        col(Balance.tenant_id) == key.tenant_id,
        col(Balance.user_id) == key.user_id,
        col(Balance.leave_type_id) == key.leave_type_id,
        col(Balance.period_year) == key.period_year,
    ]
