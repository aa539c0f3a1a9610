"""Unit tests for request body validation."""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from pydantic import ValidationError

from leaveflow.models.enums import Decision, Role
from leaveflow.schemas.auth import Identity
from leaveflow.schemas.balance import CreateAdjustmentRequest
from leaveflow.schemas.leave_type import CreateLeaveTypeRequest, LeaveTypeSettingsInput
from leaveflow.schemas.policy import CreatePolicyRequest, UpdatePolicyRequest
from leaveflow.schemas.request import CancelPayload, CreateDraftPayload, DecisionPayload
from leaveflow.schemas.tenant import UpdateTenantSettingsRequest
from leaveflow.schemas.user import CreateUserRequest, UpdateUserRequest

LEAVE_TYPE_ID = uuid.uuid4()

# ---------------------------------------------------------------------------
# Leave requests
# ---------------------------------------------------------------------------


def test_draft_defaults() -> None:
    payload = CreateDraftPayload(leave_type_id=LEAVE_TYPE_ID, start_date=date(2025, 3, 3), end_date=date(2025, 3, 4))
    assert payload.half_day_start is False
    assert payload.half_day_end is False
    assert payload.comment is None


def test_draft_single_day() -> None:
    day = date(2025, 3, 3)
    payload = CreateDraftPayload(leave_type_id=LEAVE_TYPE_ID, start_date=day, end_date=day, half_day_start=True)
    assert payload.start_date == payload.end_date


def test_draft_reversed_dates() -> None:
    with pytest.raises(ValidationError, match="end_date must be on or after start_date"):
        CreateDraftPayload(leave_type_id=LEAVE_TYPE_ID, start_date=date(2025, 3, 4), end_date=date(2025, 3, 3))


def test_draft_comment_length() -> None:
    with pytest.raises(ValidationError):
        CreateDraftPayload(
            leave_type_id=LEAVE_TYPE_ID,
            start_date=date(2025, 3, 3),
            end_date=date(2025, 3, 3),
            comment="x" * 1001,
        )


def test_approve_needs_no_note() -> None:
    payload = DecisionPayload(decision=Decision.APPROVE)
    assert payload.note is None
    assert payload.expected_version is None


@pytest.mark.parametrize("note", [None, "", "   "])
def test_reject_needs_a_reason(note: str | None) -> None:
    with pytest.raises(ValidationError, match="reason is required"):
        DecisionPayload(decision=Decision.REJECT, note=note)


def test_reject_with_reason() -> None:
    payload = DecisionPayload(decision="REJECT", note="Coverage", expected_version=2)
    assert payload.decision == Decision.REJECT


def test_expected_version_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        CancelPayload(expected_version=0)


# ---------------------------------------------------------------------------
# Leave types
# ---------------------------------------------------------------------------


def test_settings_carry_over_requires_flag() -> None:
    with pytest.raises(ValidationError, match="requires carry_over_allowed"):
        LeaveTypeSettingsInput(accrual_units_per_year=10, carry_over_max_units=4)


def test_settings_with_carry_over() -> None:
    settings = LeaveTypeSettingsInput(accrual_units_per_year=40, carry_over_allowed=True, carry_over_max_units=10)
    assert settings.carry_over_max_units == 10


def test_settings_cap_yearly_allocation() -> None:
    with pytest.raises(ValidationError):
        LeaveTypeSettingsInput(accrual_units_per_year=2 * 366 + 1)


@pytest.mark.parametrize("key", ["vacation", "sick-leave", "parental_2", "9to5"])
def test_leave_type_key_accepted(key: str) -> None:
    request = CreateLeaveTypeRequest(key=key, name="X", settings=LeaveTypeSettingsInput(accrual_units_per_year=1))
    assert request.key == key


@pytest.mark.parametrize("key", ["", "Vacation", "-sick", "with space"])
def test_leave_type_key_rejected(key: str) -> None:
    with pytest.raises(ValidationError):
        CreateLeaveTypeRequest(key=key, name="X", settings=LeaveTypeSettingsInput(accrual_units_per_year=1))


# ---------------------------------------------------------------------------
# Users and adjustments
# ---------------------------------------------------------------------------


def test_create_user_defaults_to_employee() -> None:
    request = CreateUserRequest(email="a@example.com", name="A")
    assert request.role == Role.EMPLOYEE
    assert request.manager_id is None


@pytest.mark.parametrize("email", ["plain", "two@@example.com", "spa ce@example.com"])
def test_create_user_rejects_bad_email(email: str) -> None:
    with pytest.raises(ValidationError):
        CreateUserRequest(email=email, name="A")


def test_update_user_is_partial() -> None:
    request = UpdateUserRequest()
    assert request.model_dump(exclude_defaults=True) == {}


def test_adjustment_requires_reason() -> None:
    with pytest.raises(ValidationError):
        CreateAdjustmentRequest(
            user_id=uuid.uuid4(),
            leave_type_id=LEAVE_TYPE_ID,
            period_year=2025,
            amount_units=2,
            reason="",
        )


def test_identity_is_frozen() -> None:
    identity = Identity(tenant_id=uuid.uuid4(), user_id=uuid.uuid4(), role=Role.ADMIN)
    with pytest.raises(ValidationError):
        identity.role = Role.EMPLOYEE  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Tenant settings and policies
# ---------------------------------------------------------------------------


def test_working_days_are_sorted_and_unique() -> None:
    request = UpdateTenantSettingsRequest(working_days=[5, 1, 1, 3])
    assert request.working_days == [1, 3, 5]


@pytest.mark.parametrize("working_days", [[], [0], [8], [1, 2, 9]])
def test_working_days_rejected(working_days: list[int]) -> None:
    with pytest.raises(ValidationError):
        UpdateTenantSettingsRequest(working_days=working_days)


def test_tenant_name_is_stripped() -> None:
    assert UpdateTenantSettingsRequest(name="  Acme ").name == "Acme"
    with pytest.raises(ValidationError):
        UpdateTenantSettingsRequest(name="   ")


def test_tenant_settings_update_is_partial() -> None:
    request = UpdateTenantSettingsRequest(cancellation_grace_days=0)
    assert request.model_dump(exclude_none=True) == {"cancellation_grace_days": 0}


def test_policy_blackout_dates_are_sorted_and_unique() -> None:
    request = CreatePolicyRequest(
        name="Close", blackout_dates=[date(2025, 12, 31), date(2025, 12, 30), date(2025, 12, 31)]
    )
    assert request.blackout_dates == [date(2025, 12, 30), date(2025, 12, 31)]


def test_policy_day_limit_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        CreatePolicyRequest(name="None at all", max_consecutive_days=0)


def test_policy_update_leaves_blackouts_alone_by_default() -> None:
    request = UpdatePolicyRequest(is_active=False)
    assert request.blackout_dates is None
    assert request.clear_max_consecutive_days is False
