"""Tests for the balance ledger: atomic reservations, postings, periods and rebuild."""

from __future__ import annotations

import asyncio
import uuid
from datetime import date
from typing import TYPE_CHECKING

import pytest
from factories import create_leave_type
from sqlalchemy import select, update
from sqlmodel import col

from leaveflow.exceptions import ConcurrentModification, InsufficientBalance, NotFound, ValidationFailed
from leaveflow.models.balance import Balance
from leaveflow.models.enums import LedgerEntryType, LedgerSourceType, RequestStatus
from leaveflow.models.ledger import LedgerEntry
from leaveflow.models.request import LeaveRequest
from leaveflow.services.leave_type import get_current_version
from leaveflow.services.ledger import BalanceKey, BalanceLedger, Reservation

if TYPE_CHECKING:
    from factories import Org
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

YEAR = 2025


def _key(org: Org, year: int = YEAR) -> BalanceKey:
    return BalanceKey(org.tenant.id, org.employee.id, org.leave_type.id, year)


async def _entries(session: AsyncSession, key: BalanceKey) -> list[LedgerEntry]:
    result = await session.execute(
        select(LedgerEntry)
        .where(
            col(LedgerEntry.user_id) == key.user_id,
            col(LedgerEntry.leave_type_id) == key.leave_type_id,
            col(LedgerEntry.period_year) == key.period_year,
        )
        .order_by(col(LedgerEntry.created_at))
    )
    return list(result.scalars().all())


def _assert_invariant(balance: Balance) -> None:
    assert balance.pending >= 0
    assert balance.consumed >= 0
    assert balance.accrued >= balance.consumed + balance.pending


async def _opened(session: AsyncSession, org: Org) -> tuple[BalanceLedger, BalanceKey]:
    ledger = BalanceLedger(session)
    key = _key(org)
    await ledger.open_period(key)
    await session.commit()
    return ledger, key


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


async def test_open_period_posts_allocation(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)

    balance = await ledger.get_balance(key)
    assert balance is not None
    assert (balance.accrued, balance.consumed, balance.pending) == (10, 0, 0)

    entries = await _entries(db_session, key)
    assert [(e.entry_type, e.amount_units, e.source_type) for e in entries] == [
        (LedgerEntryType.ACCRUAL.value, 10, LedgerSourceType.SYSTEM.value)
    ]


async def test_open_period_twice_is_rejected(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)

    with pytest.raises(ConcurrentModification):
        await ledger.open_period(key)
    await db_session.rollback()


async def test_ensure_period_is_idempotent(db_session: AsyncSession, org: Org) -> None:
    ledger = BalanceLedger(db_session)
    first = await ledger.ensure_period(_key(org))
    await db_session.commit()
    second = await ledger.ensure_period(_key(org))

    assert first.accrued == second.accrued == 10
    assert len(await _entries(db_session, _key(org))) == 1


async def _carry_type(session: AsyncSession, org: Org) -> tuple[BalanceKey, BalanceKey]:
    leave_type = await create_leave_type(
        session,
        org.tenant,
        org.admin,
        key="carry",
        accrual_units_per_year=20,
        carry_over_allowed=True,
        carry_over_max_units=6,
    )
    prior = BalanceKey(org.tenant.id, org.employee.id, leave_type.id, YEAR - 1)
    current = BalanceKey(org.tenant.id, org.employee.id, leave_type.id, YEAR)
    return prior, current


async def test_open_period_posts_no_carry_over(db_session: AsyncSession, org: Org) -> None:
    prior, current = await _carry_type(db_session, org)
    ledger = BalanceLedger(db_session)
    await ledger.open_period(prior)
    balance = await ledger.open_period(current)
    await db_session.commit()

    assert balance.accrued == 20
    kinds = [e.entry_type for e in await _entries(db_session, current)]
    assert kinds == [LedgerEntryType.ACCRUAL.value]


async def test_carry_over_moves_capped_remainder(db_session: AsyncSession, org: Org) -> None:
    prior, current = await _carry_type(db_session, org)
    ledger = BalanceLedger(db_session)
    await ledger.open_period(prior)
    await ledger.reserve(prior, 4, uuid.uuid4())
    await ledger.open_period(current)
    await db_session.commit()

    # 16 units were left in the prior year; the cap keeps 6.
    carried = await ledger.carry_over(current)
    await db_session.commit()

    assert carried == 6
    prior_balance = await ledger.get_balance(prior)
    current_balance = await ledger.get_balance(current)
    assert prior_balance is not None
    assert current_balance is not None
    assert (prior_balance.accrued, prior_balance.pending, prior_balance.available) == (14, 4, 10)
    assert current_balance.accrued == 26
    _assert_invariant(prior_balance)

    current_kinds = {e.entry_type: e.amount_units for e in await _entries(db_session, current)}
    assert current_kinds == {LedgerEntryType.ACCRUAL.value: 20, LedgerEntryType.CARRYOVER.value: 6}
    prior_carry = [e for e in await _entries(db_session, prior) if e.entry_type == LedgerEntryType.CARRYOVER.value]
    assert [e.amount_units for e in prior_carry] == [-6]
    assert prior_carry[0].metadata_json == {"to_year": YEAR}


async def test_carry_over_runs_once(db_session: AsyncSession, org: Org) -> None:
    prior, current = await _carry_type(db_session, org)
    ledger = BalanceLedger(db_session)
    await ledger.open_period(prior)
    await ledger.open_period(current)
    assert await ledger.carry_over(current) == 6
    await db_session.commit()

    assert await ledger.carry_over(current) == 0
    await db_session.commit()

    balance = await ledger.get_balance(current)
    prior_balance = await ledger.get_balance(prior)
    assert balance is not None
    assert prior_balance is not None
    assert (balance.accrued, prior_balance.accrued) == (26, 14)


async def test_carry_over_cannot_be_spent_twice(db_session: AsyncSession, org: Org) -> None:
    prior, current = await _carry_type(db_session, org)
    ledger = BalanceLedger(db_session)
    await ledger.open_period(prior)
    # The next year is opened early, before the prior year is used up.
    await ledger.open_period(current)
    await ledger.commit(await ledger.reserve(prior, 20, uuid.uuid4()))
    await db_session.commit()

    assert await ledger.carry_over(current) == 0
    await db_session.commit()

    balance = await ledger.get_balance(current)
    prior_balance = await ledger.get_balance(prior)
    assert balance is not None
    assert prior_balance is not None
    assert balance.accrued == 20
    assert (prior_balance.accrued, prior_balance.consumed) == (20, 20)


async def test_carry_over_only_moves_what_is_left(db_session: AsyncSession, org: Org) -> None:
    prior, current = await _carry_type(db_session, org)
    ledger = BalanceLedger(db_session)
    await ledger.open_period(prior)
    await ledger.open_period(current)
    await ledger.commit(await ledger.reserve(prior, 18, uuid.uuid4()))
    await db_session.commit()

    assert await ledger.carry_over(current) == 2
    await db_session.commit()

    prior_balance = await ledger.get_balance(prior)
    assert prior_balance is not None
    assert (prior_balance.accrued, prior_balance.consumed, prior_balance.available) == (18, 18, 0)


async def test_rebuild_after_carry_over_reports_no_drift(db_session: AsyncSession, org: Org) -> None:
    prior, current = await _carry_type(db_session, org)
    ledger = BalanceLedger(db_session)
    await ledger.open_period(prior)
    await ledger.open_period(current)
    await ledger.carry_over(current)
    await db_session.commit()

    prior_result = await ledger.rebuild(prior)
    current_result = await ledger.rebuild(current)
    await db_session.commit()

    assert (prior_result.drifted, prior_result.balance.accrued) == (False, 14)
    assert (current_result.drifted, current_result.balance.accrued) == (False, 26)


async def test_carry_over_needs_an_opened_prior_year(db_session: AsyncSession, org: Org) -> None:
    _, current = await _carry_type(db_session, org)
    ledger = BalanceLedger(db_session)
    await ledger.open_period(current)

    assert await ledger.carry_over(current) == 0


async def test_carry_over_without_allowance_ignores_prior_year(db_session: AsyncSession, org: Org) -> None:
    ledger = BalanceLedger(db_session)
    await ledger.open_period(_key(org, YEAR - 1))
    await ledger.open_period(_key(org))

    assert await ledger.carry_over(_key(org)) == 0
    await db_session.commit()

    balance = await ledger.get_balance(_key(org))
    assert balance is not None
    assert balance.accrued == 10


# ---------------------------------------------------------------------------
# Reserve / commit / release
# ---------------------------------------------------------------------------


async def test_reserve_commit_release_keep_invariant(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)

    first = await ledger.reserve(key, 3, uuid.uuid4())
    second = await ledger.reserve(key, 4, uuid.uuid4())
    balance = await ledger.get_balance(key)
    assert balance is not None
    assert (balance.pending, balance.available) == (7, 3)
    _assert_invariant(balance)

    await ledger.commit(first)
    balance = await ledger.get_balance(key)
    assert balance is not None
    assert (balance.consumed, balance.pending) == (3, 4)
    _assert_invariant(balance)

    await ledger.release(second)
    balance = await ledger.get_balance(key)
    assert balance is not None
    assert (balance.accrued, balance.consumed, balance.pending, balance.available) == (10, 3, 0, 7)
    _assert_invariant(balance)
    await db_session.commit()


async def test_reserve_beyond_available_fails_without_mutation(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)

    with pytest.raises(InsufficientBalance):
        await ledger.reserve(key, 11, uuid.uuid4())

    balance = await ledger.get_balance(key)
    assert balance is not None
    assert (balance.pending, balance.version) == (0, 1)
    assert len(await _entries(db_session, key)) == 1


async def test_reserve_exact_capacity(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    await ledger.reserve(key, 10, uuid.uuid4())

    balance = await ledger.get_balance(key)
    assert balance is not None
    assert balance.available == 0


async def test_reserve_without_period_is_insufficient(db_session: AsyncSession, org: Org) -> None:
    with pytest.raises(InsufficientBalance):
        await BalanceLedger(db_session).reserve(_key(org), 1, uuid.uuid4())


async def test_reserve_rejects_non_positive_units(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    with pytest.raises(ValidationFailed):
        await ledger.reserve(key, 0, uuid.uuid4())


async def test_reserve_twice_for_same_request_is_rejected(db_session: AsyncSession, org: Org) -> None:
    """The HOLD posting is unique per request, so a replay cannot double count."""
    ledger, key = await _opened(db_session, org)
    request_id = uuid.uuid4()
    await ledger.reserve(key, 2, request_id)
    await db_session.commit()

    with pytest.raises(ConcurrentModification):
        await ledger.reserve(key, 2, request_id)
    await db_session.rollback()

    balance = await ledger.get_balance(key)
    assert balance is not None
    assert balance.pending == 2


async def test_commit_posts_hold_release_and_usage(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    reservation = await ledger.reserve(key, 3, uuid.uuid4())
    await ledger.commit(reservation)
    await db_session.commit()

    entries = [(e.entry_type, e.amount_units) for e in await _entries(db_session, key)]
    assert (LedgerEntryType.HOLD.value, -3) in entries
    assert (LedgerEntryType.HOLD_RELEASE.value, 3) in entries
    assert (LedgerEntryType.USAGE.value, -3) in entries


async def test_commit_of_released_reservation_fails(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    reservation = await ledger.reserve(key, 3, uuid.uuid4())
    await ledger.release(reservation)
    await db_session.commit()

    with pytest.raises(ConcurrentModification):
        await ledger.commit(reservation)
    await db_session.rollback()


async def test_release_consumed_returns_units(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    reservation = await ledger.reserve(key, 3, uuid.uuid4())
    await ledger.commit(reservation)
    await ledger.release_consumed(reservation)
    await db_session.commit()

    balance = await ledger.get_balance(key)
    assert balance is not None
    assert (balance.consumed, balance.available) == (0, 10)
    assert LedgerEntryType.USAGE_REVERSAL.value in {e.entry_type for e in await _entries(db_session, key)}


async def test_reservation_for_request(org: Org) -> None:
    request = LeaveRequest(
        tenant_id=org.tenant.id,
        user_id=org.employee.id,
        leave_type_id=org.leave_type.id,
        leave_type_version_id=uuid.uuid4(),
        start_date=date(YEAR, 3, 3),
        end_date=date(YEAR, 3, 3),
        units=2,
        period_year=YEAR,
    )
    reservation = Reservation.for_request(request)
    assert reservation.key == _key(org)
    assert (reservation.units, reservation.request_id) == (2, request.id)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


async def test_concurrent_reserves_only_one_fits(
    session_factory: async_sessionmaker[AsyncSession],
    db_session: AsyncSession,
    org: Org,
) -> None:
    """Of N parallel reservations against room for one, exactly one succeeds."""
    ledger, key = await _opened(db_session, org)
    attempts = 8

    async def _attempt() -> bool:
        async with session_factory() as session:
            try:
                await BalanceLedger(session).reserve(key, 6, uuid.uuid4())
                await session.commit()
            except InsufficientBalance:
                await session.rollback()
                return False
            return True

    results = await asyncio.gather(*(_attempt() for _ in range(attempts)))

    assert results.count(True) == 1
    assert results.count(False) == attempts - 1
    balance = await ledger.get_balance(key)
    assert balance is not None
    assert (balance.pending, balance.available) == (6, 4)
    _assert_invariant(balance)


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------


async def test_adjust_adds_and_deducts(db_session: AsyncSession, org: Org) -> None:
    ledger = BalanceLedger(db_session)
    key = _key(org)

    entry = await ledger.adjust(key, 4, actor_id=org.admin.id, reason="Bonus days")
    await ledger.adjust(key, -2, actor_id=org.admin.id, reason="Correction")
    await db_session.commit()

    balance = await ledger.get_balance(key)
    assert balance is not None
    assert balance.accrued == 12
    assert entry.source_type == LedgerSourceType.ADMIN.value
    assert entry.source_id == str(entry.id)
    assert entry.metadata_json == {"reason": "Bonus days", "adjusted_by": str(org.admin.id)}


async def test_adjust_cannot_uncover_reserved_units(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    await ledger.reserve(key, 8, uuid.uuid4())
    await db_session.commit()

    with pytest.raises(InsufficientBalance):
        await ledger.adjust(key, -3, actor_id=org.admin.id, reason="Too much")
    await db_session.rollback()

    balance = await ledger.get_balance(key)
    assert balance is not None
    assert balance.accrued == 10
    _assert_invariant(balance)


async def test_adjust_rejects_zero(db_session: AsyncSession, org: Org) -> None:
    with pytest.raises(ValidationFailed):
        await BalanceLedger(db_session).adjust(_key(org), 0, actor_id=org.admin.id, reason="noop")


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------


async def _request(
    session: AsyncSession,
    org: Org,
    units: int,
    status: RequestStatus,
) -> LeaveRequest:
    version = await get_current_version(session, org.leave_type.id)
    assert version is not None
    request = LeaveRequest(
        tenant_id=org.tenant.id,
        user_id=org.employee.id,
        leave_type_id=org.leave_type.id,
        leave_type_version_id=version.id,
        start_date=date(YEAR, 4, 1),
        end_date=date(YEAR, 4, 1),
        units=units,
        period_year=YEAR,
        status=status.value,
    )
    session.add(request)
    await session.flush()
    return request


async def test_rebuild_matches_untouched_balance(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    approved = await _request(db_session, org, 3, RequestStatus.APPROVED)
    await ledger.commit(await ledger.reserve(key, 3, approved.id))
    pending = await _request(db_session, org, 2, RequestStatus.PENDING)
    await ledger.reserve(key, 2, pending.id)
    await db_session.commit()

    result = await ledger.rebuild(key)

    assert result.drifted is False
    assert (result.balance.accrued, result.balance.consumed, result.balance.pending) == (10, 3, 2)


async def test_rebuild_repairs_corrupted_balance(db_session: AsyncSession, org: Org) -> None:
    ledger, key = await _opened(db_session, org)
    await ledger.adjust(key, 2, actor_id=org.admin.id, reason="Bonus")
    pending = await _request(db_session, org, 4, RequestStatus.PENDING)
    await ledger.reserve(key, 4, pending.id)
    await _request(db_session, org, 1, RequestStatus.REJECTED)
    await db_session.commit()

    # Corrupt the projection behind the ledger's back.
    await db_session.execute(
        update(Balance)
        .where(col(Balance.user_id) == org.employee.id, col(Balance.period_year) == YEAR)
        .values(accrued=50, pending=0, consumed=7)
    )
    await db_session.commit()

    result = await ledger.rebuild(key)
    await db_session.commit()

    assert result.drifted is True
    assert (result.balance.accrued, result.balance.consumed, result.balance.pending) == (12, 0, 4)
    _assert_invariant(result.balance)


async def test_rebuild_missing_balance(db_session: AsyncSession, org: Org) -> None:
    with pytest.raises(NotFound):
        await BalanceLedger(db_session).rebuild(_key(org))
