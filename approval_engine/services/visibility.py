# ruff: noqa: TC003
"""Who sees which requests.

Role holders see a request in their inbox once its chain has reached their
stage with them as the assigned login, and keep seeing it afterwards as
history. Admin viewers see either the current queue of a stage or, with
``scope=ALL``, everything that ever reached it.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from approval_engine.config import get_settings
from approval_engine.exceptions import ForbiddenError, ValidationError
from approval_engine.models.enums import ApprovalRole, InboxScope, RequestStatus
from approval_engine.models.request import ApprovalRequest, ApprovalSlot
from approval_engine.services.modes import PENDING_STATUS_FOR_ROLE, modes_including
from approval_engine.services.request import RequestView, get_view_or_404, load_views
from approval_engine.services.workflow import can_view, is_admin_viewer

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.expression import Exists

    from approval_engine.models.enums import RequestKindCode
    from approval_engine.schemas.auth import AuthContext


def _stage_reached(stage: ApprovalRole, login_id: str | None = None) -> Exists:
    """Correlated EXISTS: the request's slot for ``stage`` has had its pending window opened."""
    query = select(ApprovalSlot.id).where(
        col(ApprovalSlot.request_id) == col(ApprovalRequest.id),
        col(ApprovalSlot.role) == stage.value,
        col(ApprovalSlot.reached_at).is_not(None),
    )
    if login_id is not None:
        query = query.where(col(ApprovalSlot.login_id) == login_id)
    return query.exists()


def can_view_detail(view: RequestView, auth: AuthContext) -> bool:
    """Requester, any assigned participant, or an admin viewer may open a request."""
    if is_admin_viewer(auth.roles):
        return True
    if view.request.requester_login_id == auth.login_id:
        return True
    return any(slot.login_id and slot.login_id == auth.login_id for slot in view.slots)


async def get_visible_request(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestView:
    view = await get_view_or_404(session, kind_code, request_id)
    if not can_view_detail(view, auth):
        raise ForbiddenError("Forbidden")
    return view


async def list_mine(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
) -> list[RequestView]:
    """All requests the caller submitted, newest first."""
    result = await session.execute(
        select(ApprovalRequest)
        .where(
            col(ApprovalRequest.kind) == kind_code.value,
            col(ApprovalRequest.requester_login_id) == auth.login_id,
        )
        .order_by(col(ApprovalRequest.created_at).desc())
    )
    return await load_views(session, list(result.scalars().all()))


async def list_inbox(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
    stage: ApprovalRole,
    scope: InboxScope = InboxScope.PENDING,
) -> list[RequestView]:
    """Requests in the manager, GM or COO inbox for the caller."""
    if not can_view(auth.roles, stage):
        raise ForbiddenError("Forbidden")

    query = select(ApprovalRequest).where(
        col(ApprovalRequest.kind) == kind_code.value,
        col(ApprovalRequest.approval_mode).in_([m.value for m in modes_including(stage)]),
    )
    if is_admin_viewer(auth.roles):
        if scope is InboxScope.ALL:
            query = query.where(_stage_reached(stage))
        else:
            query = query.where(col(ApprovalRequest.status) == PENDING_STATUS_FOR_ROLE[stage].value)
    else:
        query = query.where(_stage_reached(stage, auth.login_id))

    result = await session.execute(query.order_by(col(ApprovalRequest.created_at).desc()))
    return await load_views(session, list(result.scalars().all()))


def _parse_status(raw: str | None) -> RequestStatus | None:
    value = (raw or "").strip().upper()
    if not value:
        return None
    try:
        return RequestStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown status {raw!r}") from None


async def admin_list(
    session: AsyncSession,
    kind_code: RequestKindCode,
    auth: AuthContext,
    *,
    employee_id: str | None = None,
    status_filter: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int | None = None,
    skip: int = 0,
) -> tuple[list[RequestView], int]:
    """Filtered listing for admin viewers, newest first.

    The date range applies to the first subject date of each request.
    """
    if not is_admin_viewer(auth.roles):
        raise ForbiddenError("Forbidden")

    settings = get_settings()
    limit = max(1, min(limit or settings.admin_list_default_limit, settings.admin_list_max_limit))
    status = _parse_status(status_filter)
    if date_from is not None and date_to is not None and date_to < date_from:
        raise ValidationError("'to' must be on or after 'from'")

    filters = [col(ApprovalRequest.kind) == kind_code.value]
    if employee_id and employee_id.strip():
        filters.append(col(ApprovalRequest.employee_id) == employee_id.strip())
    if status is not None:
        filters.append(col(ApprovalRequest.status) == status.value)
    first_date = func.substr(col(ApprovalRequest.subject_date_key), 1, 10)
    if date_from is not None:
        filters.append(first_date >= date_from.isoformat())
    if date_to is not None:
        filters.append(first_date <= date_to.isoformat())

    count_result = await session.execute(select(func.count()).select_from(ApprovalRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(ApprovalRequest)
        .where(*filters)
        .order_by(col(ApprovalRequest.created_at).desc())
        .offset(max(skip, 0))
        .limit(limit)
    )
    return await load_views(session, list(result.scalars().all())), total
