# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import BackgroundTasks, Depends, Header, Path

from leaveflow.db import SessionDep
from leaveflow.exceptions import CrossTenant
from leaveflow.schemas.auth import Identity
from leaveflow.services.entitlement import get_entitlement_check
from leaveflow.services.identity import IdentityResolver
from leaveflow.services.ledger import BalanceLedger
from leaveflow.services.notifications import get_notification_emitter
from leaveflow.services.workflow import LeaveWorkflow


async def get_identity(
    session: SessionDep,
    authorization: str | None = Header(default=None),
    x_tenant_id: str | None = Header(default=None),
) -> Identity:
    """Resolve the bearer session and asserted tenant into an Identity."""
    return await IdentityResolver(session).resolve(authorization, x_tenant_id)


IdentityDep = Annotated[Identity, Depends(get_identity)]


async def validate_tenant_scope(
    identity: IdentityDep,
    tenant_id: uuid.UUID = Path(),
) -> Identity:
    """Ensure the path tenant_id is the caller's own tenant."""
    if tenant_id != identity.tenant_id:
        raise CrossTenant("Tenant ID mismatch")
    return identity


def get_workflow(session: SessionDep, background_tasks: BackgroundTasks) -> LeaveWorkflow:
    """Build the workflow for this request's unit of work.

    Notifications are handed to ``background_tasks`` and go out after the
    response is sent.
    """
    return LeaveWorkflow(
        session,
        BalanceLedger(session),
        get_notification_emitter(),
        get_entitlement_check(session),
        background=background_tasks,
    )


WorkflowDep = Annotated[LeaveWorkflow, Depends(get_workflow)]
