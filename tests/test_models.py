from __future__ import annotations

import uuid
from datetime import date

from leaveflow.models import (
    AuditLog,
    Balance,
    LeavePolicy,
    LeaveRequest,
    LeaveType,
    LeaveTypeVersion,
    LedgerEntry,
    SQLModel,
    Tenant,
    User,
)
from leaveflow.models.enums import RequestStatus, Role, SubscriptionStatus

EXPECTED_TABLES = {
    "tenant",
    "app_user",
    "auth_session",
    "leave_type",
    "leave_type_version",
    "leave_balance",
    "ledger_entry",
    "leave_request",
    "audit_log",
    "leave_policy",
}


def test_all_tables_registered() -> None:
    table_names = set(SQLModel.metadata.tables.keys())
    assert EXPECTED_TABLES.issubset(table_names)


def test_tenant_defaults() -> None:
    tenant = Tenant(name="Acme")
    assert tenant.working_days == [1, 2, 3, 4, 5]
    assert tenant.cancellation_grace_days == 1
    assert tenant.subscription_status == SubscriptionStatus.TRIALING
    assert tenant.trial_ends_at is None


def test_user_defaults() -> None:
    user = User(tenant_id=uuid.uuid4(), email="jane@example.com", name="Jane")
    assert user.role == Role.EMPLOYEE
    assert user.manager_id is None
    assert user.is_active is True
    assert user.deleted_at is None


def test_leave_policy_defaults() -> None:
    policy = LeavePolicy(tenant_id=uuid.uuid4(), name="Peak season")
    assert policy.max_consecutive_days is None
    assert policy.blackout_dates == []
    assert policy.is_active is True


def test_leave_type_version_instantiation() -> None:
    version = LeaveTypeVersion(
        leave_type_id=uuid.uuid4(),
        version=1,
        accrual_units_per_year=50,
        created_by=uuid.uuid4(),
    )
    assert version.carry_over_allowed is False
    assert version.carry_over_max_units == 0
    assert version.superseded is False


def test_leave_type_instantiation() -> None:
    leave_type = LeaveType(tenant_id=uuid.uuid4(), key="vacation", name="Vacation")
    assert leave_type.is_active is True
    assert leave_type.id is not None


def test_leave_request_defaults() -> None:
    request = LeaveRequest(
        tenant_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        leave_type_version_id=uuid.uuid4(),
        start_date=date(2025, 7, 1),
        end_date=date(2025, 7, 2),
        units=4,
        period_year=2025,
    )
    assert request.status == RequestStatus.DRAFT
    assert request.version == 1
    assert request.approver_id is None
    assert request.half_day_start is False


def test_balance_defaults_and_available() -> None:
    balance = Balance(
        tenant_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        period_year=2025,
    )
    assert (balance.accrued, balance.consumed, balance.pending) == (0, 0, 0)
    assert balance.version == 1

    balance.accrued, balance.consumed, balance.pending = 20, 6, 4
    assert balance.available == 10


def test_balance_table_carries_invariant_checks() -> None:
    table = SQLModel.metadata.tables["leave_balance"]
    names = {c.name for c in table.constraints}
    assert {"ck_balance_non_negative", "ck_balance_covered"}.issubset(names)
    assert {c.name for c in table.primary_key.columns} == {"tenant_id", "user_id", "leave_type_id", "period_year"}


def test_ledger_entry_instantiation() -> None:
    entry = LedgerEntry(
        tenant_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        period_year=2025,
        entry_type="ACCRUAL",
        amount_units=50,
        source_type="SYSTEM",
        source_id="2025",
    )
    assert entry.amount_units == 50
    assert entry.metadata_json is None


def test_audit_log_instantiation() -> None:
    log = AuditLog(
        tenant_id=uuid.uuid4(),
        actor_id=uuid.uuid4(),
        entity_type="REQUEST",
        entity_id=uuid.uuid4(),
        action="CREATE",
    )
    assert log.before_json is None
    assert log.after_json is None
