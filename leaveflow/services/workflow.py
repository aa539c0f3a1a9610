"""Leave request workflow.

DRAFT -> PENDING -> APPROVED | REJECTED, PENDING -> CANCELLED, and
APPROVED -> CANCELLED until the tenant's grace window closes. A DRAFT that
is never submitted can be discarded.

Each transition checks entitlement, then authorization, then moves the
request with a compare-and-swap on its version and settles the balance in the
same transaction. Notifications go out only after commit.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlmodel import col

from leaveflow.exceptions import (
    BalanceExceeded,
    ConcurrentModification,
    InsufficientBalance,
    InvalidTransition,
    NotFound,
    OverlappingRequest,
    TrialExpired,
    ValidationFailed,
)
from leaveflow.models.base import now_utc
from leaveflow.models.enums import AuditAction, AuditEntityType, Decision, RequestStatus
from leaveflow.models.request import LeaveRequest
from leaveflow.models.tenant import Tenant
from leaveflow.models.user import User
from leaveflow.schemas.request import RequestListResponse, RequestResponse
from leaveflow.services.access import Action, Resource, require, require_any
from leaveflow.services.audit import model_to_audit_dict, write_audit_log
from leaveflow.services.duration import units_for_request
from leaveflow.services.leave_type import get_current_version, get_leave_type_or_404
from leaveflow.services.ledger import Reservation
from leaveflow.services.notifications import NotificationKind
from leaveflow.services.policy import check_request_policies

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import BackgroundTasks
    from sqlalchemy.ext.asyncio import AsyncSession

    from leaveflow.schemas.auth import Identity
    from leaveflow.schemas.request import CreateDraftPayload, RequestScope
    from leaveflow.services.entitlement import EntitlementCheck
    from leaveflow.services.ledger import BalanceLedger
    from leaveflow.services.notifications import NotificationEmitter

logger = logging.getLogger(__name__)

# Requests that still claim their dates.
BLOCKING_STATUSES = (
    RequestStatus.DRAFT.value,
    RequestStatus.PENDING.value,
    RequestStatus.APPROVED.value,
)


def build_request_response(request: LeaveRequest) -> RequestResponse:
    """Map a request model to its response schema."""
    return RequestResponse(
        id=request.id,
        tenant_id=request.tenant_id,
        user_id=request.user_id,
        leave_type_id=request.leave_type_id,
        leave_type_version_id=request.leave_type_version_id,
        start_date=request.start_date,
        end_date=request.end_date,
        half_day_start=request.half_day_start,
        half_day_end=request.half_day_end,
        units=request.units,
        period_year=request.period_year,
        status=RequestStatus(request.status),
        comment=request.comment,
        decision_note=request.decision_note,
        approver_id=request.approver_id,
        version=request.version,
        created_at=request.created_at,
        submitted_at=request.submitted_at,
        decided_at=request.decided_at,
        cancelled_at=request.cancelled_at,
    )


class LeaveWorkflow:
    """Drives leave requests through their lifecycle for one unit of work."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: BalanceLedger,
        notifier: NotificationEmitter,
        entitlements: EntitlementCheck,
        today: Callable[[], date] = date.today,
        background: BackgroundTasks | None = None,
    ) -> None:
        self._session = session
        self._ledger = ledger
        self._notifier = notifier
        self._entitlements = entitlements
        self._today = today
        # Without a task queue, notifications are emitted before the call returns.
        self._background = background

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def create_draft(self, identity: Identity, payload: CreateDraftPayload) -> RequestResponse:
        """Persist a DRAFT request for the caller with units computed from its dates."""
        await self._check_entitlement(identity)
        try:
            owner = await self._get_user(identity.user_id)
            require(identity, Action.CREATE_REQUEST, _resource_for_owner(owner))

            leave_type = await get_leave_type_or_404(self._session, identity.tenant_id, payload.leave_type_id)
            if not leave_type.is_active:
                raise ValidationFailed("Leave type is not active")
            version = await get_current_version(self._session, leave_type.id)
            if version is None:
                raise NotFound("Leave type has no current version")

            tenant = await self._get_tenant(identity.tenant_id)
            units = units_for_request(
                payload.start_date,
                payload.end_date,
                working_days=tenant.working_days,
                half_day_start=payload.half_day_start,
                half_day_end=payload.half_day_end,
            )
            await check_request_policies(
                self._session, identity.tenant_id, payload.start_date, payload.end_date, units
            )
            await self._lock_owner(owner)
            await self._check_overlap(identity.tenant_id, identity.user_id, payload.start_date, payload.end_date)

            request = LeaveRequest(
                tenant_id=identity.tenant_id,
                user_id=identity.user_id,
                leave_type_id=leave_type.id,
                leave_type_version_id=version.id,
                start_date=payload.start_date,
                end_date=payload.end_date,
                half_day_start=payload.half_day_start,
                half_day_end=payload.half_day_end,
                units=units,
                period_year=payload.start_date.year,
                status=RequestStatus.DRAFT.value,
                comment=payload.comment,
            )
            self._session.add(request)
            await self._session.flush()

            await write_audit_log(
                self._session,
                tenant_id=identity.tenant_id,
                actor_id=identity.user_id,
                entity_type=AuditEntityType.REQUEST,
                entity_id=request.id,
                action=AuditAction.CREATE,
                after_json=model_to_audit_dict(request),
            )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("Draft %s created by %s (%d units)", request.id, identity.user_id, units)
        return build_request_response(request)

    async def submit(
        self,
        identity: Identity,
        request_id: uuid.UUID,
        expected_version: int | None = None,
    ) -> RequestResponse:
        """Reserve the request's units and move it DRAFT -> PENDING.

        An insufficient balance raises BalanceExceeded and leaves the request
        in DRAFT.
        """
        await self._check_entitlement(identity)
        try:
            request = await self._get_request(request_id)
            owner = await self._get_user(request.user_id)
            require(identity, Action.CREATE_REQUEST, _resource_for_owner(owner))
            self._expect(request, RequestStatus.DRAFT, expected_version)

            if request.start_date > request.end_date:
                raise ValidationFailed("start_date must be on or before end_date")
            if request.units <= 0:
                raise ValidationFailed("Request covers no working time")
            await check_request_policies(
                self._session, request.tenant_id, request.start_date, request.end_date, request.units
            )
            await self._check_overlap(
                request.tenant_id, request.user_id, request.start_date, request.end_date, exclude=request.id
            )

            before = model_to_audit_dict(request)
            await self._swap(request, RequestStatus.PENDING, submitted_at=now_utc())

            key = Reservation.for_request(request).key
            await self._ledger.ensure_period(key)
            try:
                await self._ledger.reserve(key, request.units, request.id)
            except InsufficientBalance as exc:
                raise BalanceExceeded(exc.message) from exc

            await self._audit(identity, request, AuditAction.SUBMIT, before)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("Request %s submitted by %s", request.id, identity.user_id)
        await self._notify(NotificationKind.SUBMITTED_REQUEST, request, manager_id=owner.manager_id)
        return build_request_response(request)

    async def decide(
        self,
        identity: Identity,
        request_id: uuid.UUID,
        decision: Decision,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> RequestResponse:
        """Approve (consume the reservation) or reject (release it) a PENDING request."""
        await self._check_entitlement(identity)
        try:
            request = await self._get_request(request_id)
            owner = await self._get_user(request.user_id)
            require(identity, Action.DECIDE_REQUEST, _resource_for_owner(owner))
            self._expect(request, RequestStatus.PENDING, expected_version)
            if decision == Decision.REJECT and not (note and note.strip()):
                raise ValidationFailed("A reason is required to reject a request")

            before = model_to_audit_dict(request)
            reservation = Reservation.for_request(request)
            new_status = RequestStatus.APPROVED if decision == Decision.APPROVE else RequestStatus.REJECTED
            await self._swap(
                request,
                new_status,
                approver_id=identity.user_id,
                decided_at=now_utc(),
                decision_note=note,
            )
            if decision == Decision.APPROVE:
                await self._ledger.commit(reservation)
            else:
                await self._ledger.release(reservation)

            action = AuditAction.APPROVE if decision == Decision.APPROVE else AuditAction.REJECT
            await self._audit(identity, request, action, before)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("Request %s %s by %s", request.id, new_status.lower(), identity.user_id)
        kind = (
            NotificationKind.APPROVED_REQUEST if decision == Decision.APPROVE else NotificationKind.REJECTED_REQUEST
        )
        await self._notify(kind, request)
        return build_request_response(request)

    async def cancel(
        self,
        identity: Identity,
        request_id: uuid.UUID,
        expected_version: int | None = None,
    ) -> RequestResponse:
        """Cancel a PENDING request, or an APPROVED one before the grace window closes.

        Only the owner or an admin may cancel.
        """
        await self._check_entitlement(identity)
        try:
            request = await self._get_request(request_id)
            owner = await self._get_user(request.user_id)
            require_any(identity, (Action.READ_OWN, Action.READ_ALL), _resource_for_owner(owner))
            if expected_version is not None and expected_version != request.version:
                raise ConcurrentModification()

            status = RequestStatus(request.status)
            reservation = Reservation.for_request(request)
            if status == RequestStatus.APPROVED:
                tenant = await self._get_tenant(request.tenant_id)
                cutoff = request.start_date - timedelta(days=tenant.cancellation_grace_days)
                if self._today() > cutoff:
                    raise InvalidTransition(f"Approved leave can only be cancelled until {cutoff.isoformat()}")
            elif status != RequestStatus.PENDING:
                raise InvalidTransition(f"Cannot cancel a request in status {status}")

            before = model_to_audit_dict(request)
            await self._swap(request, RequestStatus.CANCELLED, cancelled_at=now_utc())
            if status == RequestStatus.APPROVED:
                await self._ledger.release_consumed(reservation)
            else:
                await self._ledger.release(reservation)

            await self._audit(identity, request, AuditAction.CANCEL, before)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("Request %s cancelled by %s (was %s)", request.id, identity.user_id, status)
        await self._notify(NotificationKind.CANCELLED_REQUEST, request, previous_status=status.value)
        return build_request_response(request)

    async def discard(
        self,
        identity: Identity,
        request_id: uuid.UUID,
        expected_version: int | None = None,
    ) -> None:
        """Delete a DRAFT, freeing its dates. Only the owner or an admin may discard.

        Drafts hold no balance, so nothing is released.
        """
        await self._check_entitlement(identity)
        try:
            request = await self._get_request(request_id)
            owner = await self._get_user(request.user_id)
            require_any(identity, (Action.READ_OWN, Action.READ_ALL), _resource_for_owner(owner))
            self._expect(request, RequestStatus.DRAFT, expected_version)

            before = model_to_audit_dict(request)
            result = await self._session.execute(
                delete(LeaveRequest)
                .where(
                    col(LeaveRequest.id) == request.id,
                    col(LeaveRequest.version) == request.version,
                    col(LeaveRequest.status) == RequestStatus.DRAFT.value,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:  # ty: ignore[unresolved-attribute]
                raise ConcurrentModification()
            self._session.expunge(request)

            await write_audit_log(
                self._session,
                tenant_id=request.tenant_id,
                actor_id=identity.user_id,
                entity_type=AuditEntityType.REQUEST,
                entity_id=request.id,
                action=AuditAction.DELETE,
                before_json=before,
            )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("Draft %s discarded by %s", request_id, identity.user_id)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get(self, identity: Identity, request_id: uuid.UUID) -> RequestResponse:
        """Return a request to its owner, the owner's manager, or an admin."""
        request = await self._get_request(request_id)
        owner = await self._get_user(request.user_id)
        require_any(identity, (Action.READ_OWN, Action.READ_TEAM, Action.READ_ALL), _resource_for_owner(owner))
        return build_request_response(request)

    async def list_requests(
        self,
        identity: Identity,
        scope: RequestScope = "own",
        status_filter: RequestStatus | None = None,
        leave_type_id: uuid.UUID | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> RequestListResponse:
        """List requests visible under ``scope``: the caller's, their reports', or the tenant's."""
        filters: list[Any] = [col(LeaveRequest.tenant_id) == identity.tenant_id]
        if scope == "own":
            filters.append(col(LeaveRequest.user_id) == identity.user_id)
        elif scope == "team":
            require(
                identity,
                Action.READ_TEAM,
                Resource(tenant_id=identity.tenant_id, owner_manager_id=identity.user_id),
            )
            reports = select(col(User.id)).where(
                col(User.tenant_id) == identity.tenant_id,
                col(User.manager_id) == identity.user_id,
            )
            filters.append(col(LeaveRequest.user_id).in_(reports))
        else:
            require(identity, Action.READ_ALL, Resource(tenant_id=identity.tenant_id))

        if status_filter is not None:
            filters.append(col(LeaveRequest.status) == status_filter.value)
        if leave_type_id is not None:
            filters.append(col(LeaveRequest.leave_type_id) == leave_type_id)

        count_result = await self._session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
        total = count_result.scalar_one()

        result = await self._session.execute(
            select(LeaveRequest)
            .where(*filters)
            .order_by(col(LeaveRequest.start_date).desc(), col(LeaveRequest.created_at).desc())
            .offset(offset)
            .limit(limit)
        )
        return RequestListResponse(
            items=[build_request_response(r) for r in result.scalars().all()],
            total=total,
        )

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _check_entitlement(self, identity: Identity) -> None:
        if not await self._entitlements.is_active(identity.tenant_id):
            logger.warning("Tenant %s is not entitled; refusing mutation by %s", identity.tenant_id, identity.user_id)
            raise TrialExpired()

    async def _get_request(self, request_id: uuid.UUID) -> LeaveRequest:
        # Not filtered by tenant: the policy engine reports foreign requests as CrossTenant.
        request = await self._session.get(LeaveRequest, request_id)
        if request is None:
            raise NotFound("Request not found")
        return request

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = await self._session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def _get_tenant(self, tenant_id: uuid.UUID) -> Tenant:
        tenant = await self._session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFound("Tenant not found")
        return tenant

    async def _lock_owner(self, owner: User) -> None:
        """Write-lock the owner's row so overlap checks for one user run one at a time."""
        await self._session.execute(
            update(User)
            .where(col(User.id) == owner.id)
            .values(email=col(User.email))
            .execution_options(synchronize_session=False)
        )

    async def _check_overlap(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude: uuid.UUID | None = None,
    ) -> None:
        query = select(col(LeaveRequest.id)).where(
            col(LeaveRequest.tenant_id) == tenant_id,
            col(LeaveRequest.user_id) == user_id,
            col(LeaveRequest.status).in_(BLOCKING_STATUSES),
            col(LeaveRequest.start_date) <= end_date,
            col(LeaveRequest.end_date) >= start_date,
        )
        if exclude is not None:
            query = query.where(col(LeaveRequest.id) != exclude)
        result = await self._session.execute(query.limit(1))
        if result.scalar_one_or_none() is not None:
            raise OverlappingRequest()

    def _expect(self, request: LeaveRequest, status: RequestStatus, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != request.version:
            raise ConcurrentModification()
        if request.status != status.value:
            raise InvalidTransition(f"Request is {request.status}, expected {status}")

    async def _swap(self, request: LeaveRequest, status: RequestStatus, **values: Any) -> None:
        """Write the new status only if nobody moved the request since it was read."""
        result = await self._session.execute(
            update(LeaveRequest)
            .where(
                col(LeaveRequest.id) == request.id,
                col(LeaveRequest.version) == request.version,
            )
            .values(status=status.value, version=request.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # ty: ignore[unresolved-attribute]
            logger.warning("Stale write on request %s at version %d", request.id, request.version)
            raise ConcurrentModification()
        await self._session.refresh(request)

    async def _audit(
        self,
        identity: Identity,
        request: LeaveRequest,
        action: AuditAction,
        before: dict[str, Any],
    ) -> None:
        await write_audit_log(
            self._session,
            tenant_id=request.tenant_id,
            actor_id=identity.user_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=action,
            before_json=before,
            after_json=model_to_audit_dict(request),
        )

    async def _notify(self, kind: NotificationKind, request: LeaveRequest, **extra: Any) -> None:
        payload: dict[str, Any] = {
            "request_id": str(request.id),
            "tenant_id": str(request.tenant_id),
            "user_id": str(request.user_id),
            "leave_type_id": str(request.leave_type_id),
            "start_date": request.start_date.isoformat(),
            "end_date": request.end_date.isoformat(),
            "units": request.units,
            "status": request.status,
            "approver_id": str(request.approver_id) if request.approver_id else None,
            "decision_note": request.decision_note,
        }
        payload.update({k: str(v) if isinstance(v, uuid.UUID) else v for k, v in extra.items()})
        if self._background is not None:
            self._background.add_task(self._emit, kind, payload)
        else:
            await self._emit(kind, payload)

    async def _emit(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        try:
            await self._notifier.emit(kind, payload)
        except Exception:
            logger.exception("Failed to emit %s for request %s", kind, payload["request_id"])


def _resource_for_owner(owner: User) -> Resource:
    return Resource(tenant_id=owner.tenant_id, owner_id=owner.id, owner_manager_id=owner.manager_id)
