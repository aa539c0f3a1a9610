# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from leaveflow.models.base import TenantScoped, TimestampMixin, UUIDBase
from leaveflow.models.enums import Role


class User(UUIDBase, TenantScoped, TimestampMixin, table=True):
    """An employee account. Soft-deleted only, so ledger history stays attributable."""

    __tablename__ = "app_user"
    __table_args__ = (sa.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),)

    email: str = Field(max_length=255)
    name: str = Field(max_length=255)
    role: str = Field(default=Role.EMPLOYEE, max_length=50, sa_column_kwargs={"server_default": "EMPLOYEE"})
    manager_id: uuid.UUID | None = Field(default=None, foreign_key="app_user.id", index=True)
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})
    deleted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]


class AuthSession(UUIDBase, TenantScoped, TimestampMixin, table=True):
    """A bearer session written by the authentication provider.

    Only the SHA-256 digest of the token is stored.
    """

    __tablename__ = "auth_session"

    user_id: uuid.UUID = Field(foreign_key="app_user.id", index=True)
    token_hash: str = Field(max_length=64, unique=True)
    expires_at: datetime = Field(sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    revoked_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
