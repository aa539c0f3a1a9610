# ruff: noqa: TC003
from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leaveflow.exceptions import TenantMismatch, Unauthenticated
from leaveflow.models.base import as_utc, now_utc
from leaveflow.models.enums import Role
from leaveflow.models.user import AuthSession, User
from leaveflow.schemas.auth import Identity

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


def hash_token(token: str) -> str:
    """Return the hex SHA-256 digest under which a bearer token is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def parse_bearer(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.lower().startswith(_BEARER_PREFIX):
        raise Unauthenticated("Missing bearer token")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token or " " in token:
        raise Unauthenticated("Malformed bearer token")
    return token


def parse_tenant(tenant_header: str | None) -> uuid.UUID:
    if not tenant_header:
        raise Unauthenticated("Missing tenant header")
    try:
        return uuid.UUID(tenant_header.strip())
    except ValueError:
        raise Unauthenticated("Malformed tenant header") from None


class IdentityResolver:
    """Turns request credentials into an Identity, or fails closed.

    Resolution only reads: the session row proves who the caller is, the user
    row supplies the role, and the asserted tenant must be the user's own.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def resolve(self, authorization: str | None, tenant_header: str | None) -> Identity:
        token = parse_bearer(authorization)
        tenant_id = parse_tenant(tenant_header)

        result = await self._session.execute(
            select(AuthSession).where(col(AuthSession.token_hash) == hash_token(token))
        )
        auth_session = result.scalar_one_or_none()
        if auth_session is None:
            raise Unauthenticated("Unknown session")
        if auth_session.revoked_at is not None:
            raise Unauthenticated("Session revoked")
        if as_utc(auth_session.expires_at) <= now_utc():
            raise Unauthenticated("Session expired")

        user = await self._session.get(User, auth_session.user_id)
        if user is None or not user.is_active or user.deleted_at is not None:
            raise Unauthenticated("User is not active")

        if user.tenant_id != tenant_id or auth_session.tenant_id != tenant_id:
            logger.warning("User %s asserted tenant %s but belongs to %s", user.id, tenant_id, user.tenant_id)
            raise TenantMismatch()

        return Identity(tenant_id=user.tenant_id, user_id=user.id, role=Role(user.role))


async def issue_session(session: AsyncSession, user: User, ttl: timedelta) -> str:
    """Create a bearer session for ``user`` and return the raw token.

    Only the digest is stored; the caller commits.
    """
    token = secrets.token_urlsafe(32)
    session.add(
        AuthSession(
            tenant_id=user.tenant_id,
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=now_utc() + ttl,
        )
    )
    await session.flush()
    return token


async def revoke_user_sessions(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Revoke every live session of a user; returns how many were revoked."""
    result = await session.execute(
        select(AuthSession).where(
            col(AuthSession.user_id) == user_id,
            col(AuthSession.revoked_at).is_(None),
        )
    )
    sessions = list(result.scalars().all())
    now = now_utc()
    for auth_session in sessions:
        auth_session.revoked_at = now
    return len(sessions)
