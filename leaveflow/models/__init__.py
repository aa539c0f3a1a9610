from sqlmodel import SQLModel

from leaveflow.models.audit import AuditLog
from leaveflow.models.balance import Balance
from leaveflow.models.base import TenantScoped, TimestampMixin, UUIDBase
from leaveflow.models.enums import (
    AuditAction,
    AuditEntityType,
    Decision,
    LedgerEntryType,
    LedgerSourceType,
    RequestStatus,
    Role,
    SubscriptionStatus,
)
from leaveflow.models.leave_type import LeaveType, LeaveTypeVersion
from leaveflow.models.ledger import LedgerEntry
from leaveflow.models.policy import LeavePolicy
from leaveflow.models.request import LeaveRequest
from leaveflow.models.tenant import Tenant
from leaveflow.models.user import AuthSession, User

__all__ = [
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "AuthSession",
    "Balance",
    "Decision",
    "LeavePolicy",
    "LeaveRequest",
    "LeaveType",
    "LeaveTypeVersion",
    "LedgerEntry",
    "LedgerEntryType",
    "LedgerSourceType",
    "RequestStatus",
    "Role",
    "SQLModel",
    "SubscriptionStatus",
    "Tenant",
    "TenantScoped",
    "TimestampMixin",
    "User",
    "UUIDBase",
]
