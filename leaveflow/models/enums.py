from __future__ import annotations

import enum


class Role(enum.StrEnum):
    """User role. Each role implies every right of the roles ranked below it."""

    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def includes(self, other: Role) -> bool:
        """Return True when this role carries all rights of ``other``."""
        return self.rank >= other.rank


_ROLE_RANK = {Role.EMPLOYEE: 0, Role.MANAGER: 1, Role.ADMIN: 2}


class SubscriptionStatus(enum.StrEnum):
    """Billing state mirrored from the external billing provider."""

    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


class RequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class Decision(enum.StrEnum):
    """Outcome a manager or admin records on a pending request."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


class LedgerEntryType(enum.StrEnum):
    """Type of ledger entry affecting balance."""

    ACCRUAL = "ACCRUAL"
    CARRYOVER = "CARRYOVER"
    ADJUSTMENT = "ADJUSTMENT"
    HOLD = "HOLD"
    HOLD_RELEASE = "HOLD_RELEASE"
    USAGE = "USAGE"
    USAGE_REVERSAL = "USAGE_REVERSAL"


class LedgerSourceType(enum.StrEnum):
    """Origin of a ledger entry."""

    REQUEST = "REQUEST"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    LEAVE_TYPE = "LEAVE_TYPE"
    LEAVE_TYPE_VERSION = "LEAVE_TYPE_VERSION"
    REQUEST = "REQUEST"
    USER = "USER"
    BALANCE = "BALANCE"
    ADJUSTMENT = "ADJUSTMENT"
    TENANT = "TENANT"
    POLICY = "POLICY"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    REBUILD = "REBUILD"
