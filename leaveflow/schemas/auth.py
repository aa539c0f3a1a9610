# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict

from leaveflow.models.enums import Role


class Identity(BaseModel):
    """Resolved caller: who is acting, in which tenant, with which role."""

    model_config = ConfigDict(frozen=True)

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    role: Role
