# ruff: noqa: TC003
"""Request lifecycle writes: create, owner edit, cancel and role decisions.

Every status change is applied as a conditional UPDATE keyed on the status
(and, for decisions, the assigned login) the caller observed. An update that
matches no row means another writer got there first; the request is re-read
and the caller gets a ConflictError naming the status it lost to.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NoReturn

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from approval_engine.exceptions import ConflictError, DuplicateRequestError, NotFoundError
from approval_engine.models.base import utc_now
from approval_engine.models.enums import (
    LIVE_STATUSES,
    ApprovalRole,
    AuditAction,
    AuditEntityType,
    Decision,
    RequestStatus,
    SlotStatus,
)
from approval_engine.models.request import ApprovalRequest, ApprovalSlot
from approval_engine.services.audit import request_snapshot, write_audit_log
from approval_engine.services.kinds import get_kind
from approval_engine.services.modes import resolve_route
from approval_engine.services.profile import get_profile_row
from approval_engine.services.workflow import assert_cancellable, assert_editable, plan_decision

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from approval_engine.models.enums import RequestKindCode
    from approval_engine.schemas.auth import AuthContext
    from approval_engine.schemas.request import DecisionPayload
    from approval_engine.services.kinds import RequestKind

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "You already submitted this request (same dates and type)."
_NATURAL_KEY_INDEX = "uq_request_natural_key_live"
_NATURAL_KEY_COLUMNS = "approval_request.employee_id, approval_request.subject_date_key, approval_request.kind_key"

_LOGIN_COLUMNS = {
    ApprovalRole.MANAGER: col(ApprovalRequest.manager_login_id),
    ApprovalRole.GM: col(ApprovalRequest.gm_login_id),
    ApprovalRole.COO: col(ApprovalRequest.coo_login_id),
}


@dataclass
class RequestView:
    """A request together with its ordered approval slots."""

    request: ApprovalRequest
    slots: list[ApprovalSlot]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _is_natural_key_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return _NATURAL_KEY_INDEX in message or _NATURAL_KEY_COLUMNS in message


def _audit_snapshot(view: RequestView) -> dict[str, Any]:
    return request_snapshot(view.request, view.slots)


async def load_slots(session: AsyncSession, request_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[ApprovalSlot]]:
    """Fetch slots for many requests in one query, grouped and ordered by chain position."""
    grouped: dict[uuid.UUID, list[ApprovalSlot]] = {rid: [] for rid in request_ids}
    if not request_ids:
        return grouped
    result = await session.execute(
        select(ApprovalSlot)
        .where(col(ApprovalSlot.request_id).in_(request_ids))
        .order_by(col(ApprovalSlot.request_id), col(ApprovalSlot.position))
        .execution_options(populate_existing=True)
    )
    for slot in result.scalars().all():
        grouped[slot.request_id].append(slot)
    return grouped


async def load_views(session: AsyncSession, requests: list[ApprovalRequest]) -> list[RequestView]:
    slots = await load_slots(session, [r.id for r in requests])
    return [RequestView(request=r, slots=slots[r.id]) for r in requests]


async def get_view_or_404(
    session: AsyncSession,
    kind_code: RequestKindCode,
    request_id: uuid.UUID,
) -> RequestView:
    """Fetch a request of the given kind with fresh state. Raises 404 if not found."""
    result = await session.execute(
        select(ApprovalRequest)
        .where(
            col(ApprovalRequest.id) == request_id,
            col(ApprovalRequest.kind) == kind_code.value,
        )
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("Request not found")
    slots = await load_slots(session, [request.id])
    return RequestView(request=request, slots=slots[request.id])


async def _assert_no_overlap(
    session: AsyncSession,
    kind: RequestKind[Any],
    employee_id: str,
    subject: Any,
    exclude_id: uuid.UUID | None = None,
) -> None:
    """Reject a subject that clashes with another live request of the same employee."""
    if not kind.checks_overlap:
        return
    query = select(ApprovalRequest).where(
        col(ApprovalRequest.kind) == kind.code.value,
        col(ApprovalRequest.employee_id) == employee_id,
        col(ApprovalRequest.status).in_([s.value for s in LIVE_STATUSES]),
    )
    if exclude_id is not None:
        query = query.where(col(ApprovalRequest.id) != exclude_id)
    result = await session.execute(query)
    for other in result.scalars().all():
        if kind.overlaps(subject, kind.load(other.subject_json)):
            raise DuplicateRequestError(kind.overlap_message)


async def _raise_conflict(
    session: AsyncSession,
    kind_code: RequestKindCode,
    request_id: uuid.UUID,
    expected: RequestStatus,
) -> NoReturn:
    await session.rollback()
    latest = await get_view_or_404(session, kind_code, request_id)
    raise ConflictError(
        f"Someone already acted on this request ({latest.request.status}); "
        f"it is no longer {expected.value}."
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def create_request(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
    data: dict[str, Any],
) -> RequestView:
    """Create a request for the calling employee.

    Flow:
    1. Validate the kind-specific subject.
    2. Resolve approval routing from the employee's profile.
    3. Reject a clash with the employee's other live requests, for kinds that check overlap.
    4. Insert the request; the partial unique index rejects a second live
       request with the same natural key.
    5. Insert one slot per participating role, the first one already reached.
    6. Audit log and commit.
    """
    kind = get_kind(kind_code)
    subject = kind.parse(data)

    profile = await get_profile_row(session, auth.employee_id)
    if profile is None:
        raise NotFoundError("Approval profile not found")
    route = resolve_route(
        profile.approval_mode,
        profile.manager_login_id,
        profile.gm_login_id,
        profile.coo_login_id,
    )

    await _assert_no_overlap(session, kind, auth.employee_id, subject)

    subject_date_key, kind_key = kind.natural_key(subject)
    now = utc_now()
    request = ApprovalRequest(
        kind=kind.code.value,
        employee_id=auth.employee_id,
        requester_login_id=auth.login_id,
        subject_json=kind.dump(subject),
        subject_date_key=subject_date_key,
        kind_key=kind_key,
        approval_mode=route.mode.value,
        manager_login_id=route.manager_login_id,
        gm_login_id=route.gm_login_id,
        coo_login_id=route.coo_login_id,
        status=route.initial_status.value,
        created_at=now,
        updated_at=now,
    )
    session.add(request)

    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        if _is_natural_key_violation(exc):
            raise DuplicateRequestError(DUPLICATE_MESSAGE) from None
        raise

    slots = [
        ApprovalSlot(
            request_id=request.id,
            role=role.value,
            position=position,
            login_id=route.logins[role],
            slot_status=SlotStatus.PENDING.value,
            reached_at=now if position == 0 else None,
        )
        for position, role in enumerate(route.chain)
    ]
    session.add_all(slots)
    await session.flush()

    view = RequestView(request=request, slots=slots)
    await write_audit_log(
        session,
        actor_login_id=auth.login_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request.id,
        action=AuditAction.CREATE,
        after_json=_audit_snapshot(view),
    )

    await session.commit()
    logger.info("%s request %s created by %s [%s]", kind.code, request.id, auth.login_id, request.status)
    return await get_view_or_404(session, kind.code, request.id)


async def edit_request(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
    request_id: uuid.UUID,
    data: dict[str, Any],
) -> RequestView:
    """Owner edit of the subject fields while no approver has acted.

    Routing, status and slots are left untouched. The natural key is
    recomputed, so an edit can collide with another live request.
    """
    kind = get_kind(kind_code)
    view = await get_view_or_404(session, kind.code, request_id)
    expected = assert_editable(view.request, view.slots, auth)

    subject = kind.parse(kind.merge(dict(view.request.subject_json), data))
    await _assert_no_overlap(session, kind, view.request.employee_id, subject, exclude_id=request_id)
    subject_date_key, kind_key = kind.natural_key(subject)
    before = _audit_snapshot(view)

    try:
        result = await session.execute(
            update(ApprovalRequest)
            .where(
                col(ApprovalRequest.id) == request_id,
                col(ApprovalRequest.status) == expected.value,
            )
            .values(
                subject_json=kind.dump(subject),
                subject_date_key=subject_date_key,
                kind_key=kind_key,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as exc:
        await session.rollback()
        if _is_natural_key_violation(exc):
            raise DuplicateRequestError(DUPLICATE_MESSAGE) from None
        raise

    if result.rowcount == 0:  # type: ignore[attr-defined]
        await _raise_conflict(session, kind.code, request_id, expected)

    updated = await get_view_or_404(session, kind.code, request_id)
    await write_audit_log(
        session,
        actor_login_id=auth.login_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request_id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=_audit_snapshot(updated),
    )
    await session.commit()
    logger.info("%s request %s edited by %s", kind.code, request_id, auth.login_id)
    return updated


async def cancel_request(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestView:
    """Cancel a non-terminal request. The requester or an admin viewer may cancel."""
    kind = get_kind(kind_code)
    view = await get_view_or_404(session, kind.code, request_id)
    expected = assert_cancellable(view.request, auth)
    before = _audit_snapshot(view)

    now = utc_now()
    result = await session.execute(
        update(ApprovalRequest)
        .where(
            col(ApprovalRequest.id) == request_id,
            col(ApprovalRequest.status) == expected.value,
        )
        .values(
            status=RequestStatus.CANCELLED.value,
            cancelled_at=now,
            cancelled_by=auth.login_id,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:  # type: ignore[attr-defined]
        await _raise_conflict(session, kind.code, request_id, expected)

    updated = await get_view_or_404(session, kind.code, request_id)
    await write_audit_log(
        session,
        actor_login_id=auth.login_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request_id,
        action=AuditAction.CANCEL,
        before_json=before,
        after_json=_audit_snapshot(updated),
    )
    await session.commit()
    logger.info("%s request %s %s -> CANCELLED by %s", kind.code, request_id, expected, auth.login_id)
    return updated


async def decide_request(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
    request_id: uuid.UUID,
    role: ApprovalRole,
    payload: DecisionPayload,
) -> RequestView:
    """Apply a manager, GM or COO decision.

    1. Authorize and plan the transition (pure).
    2. Conditionally move the request status; zero rows means a lost race.
    3. Mark the deciding slot and open the next role's pending window.
    4. Audit log and commit.
    """
    kind = get_kind(kind_code)
    view = await get_view_or_404(session, kind.code, request_id)
    plan = plan_decision(view.request, view.slots, auth, role, payload.action, payload.comment)
    before = _audit_snapshot(view)

    now = utc_now()
    result = await session.execute(
        update(ApprovalRequest)
        .where(
            col(ApprovalRequest.id) == request_id,
            col(ApprovalRequest.status) == plan.expected_status.value,
            _LOGIN_COLUMNS[role] == auth.login_id,
        )
        .values(status=plan.next_status.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:  # type: ignore[attr-defined]
        await _raise_conflict(session, kind.code, request_id, plan.expected_status)

    await session.execute(
        update(ApprovalSlot)
        .where(
            col(ApprovalSlot.request_id) == request_id,
            col(ApprovalSlot.role) == role.value,
        )
        .values(slot_status=plan.slot_status.value, acted_at=now, note=plan.note)
        .execution_options(synchronize_session=False)
    )
    if plan.next_pending_role is not None:
        await session.execute(
            update(ApprovalSlot)
            .where(
                col(ApprovalSlot.request_id) == request_id,
                col(ApprovalSlot.role) == plan.next_pending_role.value,
            )
            .values(reached_at=now)
            .execution_options(synchronize_session=False)
        )

    updated = await get_view_or_404(session, kind.code, request_id)
    await write_audit_log(
        session,
        actor_login_id=auth.login_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request_id,
        action=AuditAction.APPROVE if plan.decision is Decision.APPROVE else AuditAction.REJECT,
        before_json=before,
        after_json=_audit_snapshot(updated),
    )
    await session.commit()
    logger.info(
        "%s request %s %s -> %s by %s (%s)",
        kind.code,
        request_id,
        plan.expected_status,
        plan.next_status,
        auth.login_id,
        role,
    )
    return updated
