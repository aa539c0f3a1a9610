"""Access policy engine.

``authorize`` evaluates an ordered table of rules; the first rule that returns
a verdict wins. Rules are pure functions of the identity, the action and the
resource, so the engine performs no I/O and always returns a verdict.
"""

# ruff: noqa: TC003
from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from leaveflow.exceptions import AppError, CrossTenant, InsufficientRole
from leaveflow.models.enums import Role

if TYPE_CHECKING:
    from leaveflow.schemas.auth import Identity

logger = logging.getLogger(__name__)


class Action(enum.StrEnum):
    """Operations gated by the policy engine."""

    READ_OWN = "READ_OWN"
    READ_TEAM = "READ_TEAM"
    READ_ALL = "READ_ALL"
    CREATE_REQUEST = "CREATE_REQUEST"
    DECIDE_REQUEST = "DECIDE_REQUEST"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"


class DenyReason(enum.StrEnum):
    CROSS_TENANT = "CrossTenant"
    INSUFFICIENT_ROLE = "InsufficientRole"


@dataclass(frozen=True)
class Resource:
    """What an action targets: the owning tenant and, when relevant, the owner."""

    tenant_id: uuid.UUID
    owner_id: uuid.UUID | None = None
    owner_manager_id: uuid.UUID | None = None


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: DenyReason | None = None

    def raise_for_denial(self) -> None:
        """Raise the exception matching a Deny verdict; no-op for Allow."""
        if self.allowed:
            return
        raise _DENIAL_ERRORS[self.reason or DenyReason.INSUFFICIENT_ROLE]()


ALLOW = Verdict(allowed=True)


def deny(reason: DenyReason) -> Verdict:
    return Verdict(allowed=False, reason=reason)


_DENIAL_ERRORS: dict[DenyReason, type[AppError]] = {
    DenyReason.CROSS_TENANT: CrossTenant,
    DenyReason.INSUFFICIENT_ROLE: InsufficientRole,
}

# A rule returns a verdict, or None to fall through to the next rule.
Rule = Callable[["Identity", Action, Resource], Verdict | None]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _is_owner(identity: Identity, resource: Resource) -> bool:
    return resource.owner_id is not None and resource.owner_id == identity.user_id


def _manages_owner(identity: Identity, resource: Resource) -> bool:
    return (
        identity.role == Role.MANAGER
        and resource.owner_manager_id is not None
        and resource.owner_manager_id == identity.user_id
    )


def _tenant_isolation(identity: Identity, action: Action, resource: Resource) -> Verdict | None:
    if resource.tenant_id != identity.tenant_id:
        return deny(DenyReason.CROSS_TENANT)
    return None


def _manage_settings(identity: Identity, action: Action, resource: Resource) -> Verdict | None:
    if action != Action.MANAGE_SETTINGS:
        return None
    return ALLOW if identity.role == Role.ADMIN else deny(DenyReason.INSUFFICIENT_ROLE)


def _decide_request(identity: Identity, action: Action, resource: Resource) -> Verdict | None:
    if action != Action.DECIDE_REQUEST:
        return None
    if identity.role == Role.ADMIN or _manages_owner(identity, resource):
        return ALLOW
    return deny(DenyReason.INSUFFICIENT_ROLE)


def _own_resource(identity: Identity, action: Action, resource: Resource) -> Verdict | None:
    if action in (Action.READ_OWN, Action.CREATE_REQUEST) and _is_owner(identity, resource):
        return ALLOW
    return None


def _read_team(identity: Identity, action: Action, resource: Resource) -> Verdict | None:
    if action != Action.READ_TEAM:
        return None
    if identity.role == Role.ADMIN or _manages_owner(identity, resource):
        return ALLOW
    return None


def _read_all(identity: Identity, action: Action, resource: Resource) -> Verdict | None:
    if action == Action.READ_ALL and identity.role == Role.ADMIN:
        return ALLOW
    return None


def _default_deny(identity: Identity, action: Action, resource: Resource) -> Verdict | None:
    return deny(DenyReason.INSUFFICIENT_ROLE)


RULES: tuple[Rule, ...] = (
    _tenant_isolation,
    _manage_settings,
    _decide_request,
    _own_resource,
    _read_team,
    _read_all,
    _default_deny,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def authorize(identity: Identity, action: Action, resource: Resource) -> Verdict:
    """Evaluate the rule table for ``action`` on ``resource``."""
    for rule in RULES:
        verdict = rule(identity, action, resource)
        if verdict is not None:
            return verdict
    return deny(DenyReason.INSUFFICIENT_ROLE)


def require(identity: Identity, action: Action, resource: Resource) -> None:
    """Raise ``CrossTenant`` or ``InsufficientRole`` unless ``action`` is allowed."""
    verdict = authorize(identity, action, resource)
    if not verdict.allowed:
        logger.warning(
            "Denied %s for user %s in tenant %s: %s",
            action,
            identity.user_id,
            identity.tenant_id,
            verdict.reason,
        )
    verdict.raise_for_denial()


def require_any(identity: Identity, actions: tuple[Action, ...], resource: Resource) -> None:
    """Raise unless at least one of ``actions`` is allowed.

    A cross-tenant resource is denied as ``CrossTenant`` whatever the actions.
    """
    verdicts = [authorize(identity, action, resource) for action in actions]
    if any(v.allowed for v in verdicts):
        return
    first = verdicts[0] if verdicts else deny(DenyReason.INSUFFICIENT_ROLE)
    logger.warning(
        "Denied %s for user %s in tenant %s: %s",
        ",".join(actions),
        identity.user_id,
        identity.tenant_id,
        first.reason,
    )
    first.raise_for_denial()
