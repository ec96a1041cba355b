# ruff: noqa: TC003
"""Orchestrates request transitions and their side effects.

The state change is committed by ``services.request`` first. Enrichment,
notification and realtime fan-out run afterwards, each bounded by a timeout
and each allowed to fail without affecting the committed transition.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any

from approval_engine.config import get_settings
from approval_engine.models.enums import (
    ApprovalMode,
    ApprovalRole,
    Decision,
    RequestKindCode,
    RequestStatus,
    SlotStatus,
)
from approval_engine.schemas.request import RequestResponse, SlotResponse
from approval_engine.services import request as request_service
from approval_engine.services.kinds import get_kind
from approval_engine.services.modes import ROLE_FOR_PENDING_STATUS
from approval_engine.services.notification import ADMINS_TARGET, user_target
from approval_engine.services.realtime import ADMINS_CHANNEL, user_channel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from approval_engine.schemas.auth import AuthContext
    from approval_engine.schemas.request import DecisionPayload
    from approval_engine.services.directory import DirectoryService, EmployeeInfo
    from approval_engine.services.notification import Notifier
    from approval_engine.services.realtime import Broadcaster
    from approval_engine.services.request import RequestView

logger = logging.getLogger(__name__)

CREATED_EVENT = "req:created"
UPDATED_EVENT = "req:updated"


def build_request_response(view: RequestView, employee: EmployeeInfo | None = None) -> RequestResponse:
    """Map a request and its slots to the response schema."""
    request = view.request
    kind = get_kind(request.kind)
    return RequestResponse(
        id=request.id,
        kind=RequestKindCode(request.kind),
        employee_id=request.employee_id,
        employee_name=employee.name if employee else "",
        department=employee.department if employee else "",
        requester_login_id=request.requester_login_id,
        subject=dict(request.subject_json),
        summary=kind.summary(kind.load(request.subject_json)),
        approval_mode=ApprovalMode(request.approval_mode),
        manager_login_id=request.manager_login_id,
        gm_login_id=request.gm_login_id,
        coo_login_id=request.coo_login_id,
        status=RequestStatus(request.status),
        approvals=[
            SlotResponse(
                role=ApprovalRole(slot.role),
                login_id=slot.login_id,
                slot_status=SlotStatus(slot.slot_status),
                reached_at=slot.reached_at,
                acted_at=slot.acted_at,
                note=slot.note,
            )
            for slot in view.slots
        ],
        created_at=request.created_at,
        updated_at=request.updated_at,
        cancelled_at=request.cancelled_at,
        cancelled_by=request.cancelled_by,
    )


def current_approver(response: RequestResponse) -> str | None:
    """Login whose decision the request is waiting on, if any."""
    role = ROLE_FOR_PENDING_STATUS.get(response.status)
    if role is None:
        return None
    for slot in response.approvals:
        if slot.role == role:
            return slot.login_id or None
    return None


def broadcast_channels(response: RequestResponse) -> list[str]:
    """Admin channel, the requester, and every assigned participant."""
    channels = [ADMINS_CHANNEL, user_channel(response.requester_login_id)]
    channels.extend(user_channel(slot.login_id) for slot in response.approvals if slot.login_id)
    return list(dict.fromkeys(channels))


class TransitionDispatcher:
    """Runs a committed transition's enrichment, notifications and broadcast."""

    def __init__(
        self,
        directory: DirectoryService,
        notifier: Notifier,
        broadcaster: Broadcaster,
        timeout: float | None = None,
    ) -> None:
        self._directory = directory
        self._notifier = notifier
        self._broadcaster = broadcaster
        self._timeout = timeout if timeout is not None else get_settings().notify_timeout_seconds

    # -- enrichment ---------------------------------------------------------

    async def enrich(self, views: list[RequestView]) -> list[RequestResponse]:
        """Attach directory name/department; a failed lookup leaves them blank."""
        employees: dict[str, EmployeeInfo] = {}
        ids = {v.request.employee_id for v in views if v.request.employee_id}
        if ids:
            try:
                employees = await asyncio.wait_for(self._directory.get_employees(ids), self._timeout)
            except Exception:
                logger.warning("Directory lookup failed for %d employee(s)", len(ids), exc_info=True)
        return [build_request_response(v, employees.get(v.request.employee_id)) for v in views]

    async def enrich_one(self, view: RequestView) -> RequestResponse:
        return (await self.enrich([view]))[0]

    # -- side effects -------------------------------------------------------

    async def _best_effort(self, what: str, call: Awaitable[None]) -> None:
        try:
            await asyncio.wait_for(call, self._timeout)
        except Exception:
            logger.exception("%s failed", what)

    async def _notify(self, response: RequestResponse, headline: str, *, requester_text: str | None) -> None:
        label = get_kind(response.kind).label
        who = response.employee_name or response.employee_id
        base = f"{label} request {response.id} ({who}): {response.summary} [{response.status.value}]"
        messages: list[tuple[str, str]] = [(ADMINS_TARGET, f"{headline}: {base}")]
        if requester_text:
            messages.append((user_target(response.requester_login_id), f"{requester_text}: {base}"))
        approver = current_approver(response)
        if approver:
            messages.append((user_target(approver), f"Awaiting your decision: {base}"))
        await asyncio.gather(
            *(
                self._best_effort(f"notify {target}", self._notifier.send(target, message))
                for target, message in messages
            )
        )

    async def _broadcast(self, response: RequestResponse, event: str) -> None:
        payload: dict[str, Any] = response.model_dump(mode="json")
        name = f"{response.kind.value.lower()}:{event}"
        await asyncio.gather(
            *(
                self._best_effort(f"broadcast {channel}", self._broadcaster.publish(channel, name, payload))
                for channel in broadcast_channels(response)
            )
        )

    async def _after_commit(
        self,
        view: RequestView,
        event: str,
        headline: str,
        requester_text: str | None,
    ) -> RequestResponse:
        response = await self.enrich_one(view)
        await self._broadcast(response, event)
        await self._notify(response, headline, requester_text=requester_text)
        return response

    # -- transitions --------------------------------------------------------

    async def create(
        self,
        session: AsyncSession,
        kind_code: RequestKindCode,
        auth: AuthContext,
        data: dict[str, Any],
    ) -> RequestResponse:
        view = await request_service.create_request(session, kind_code, auth, data)
        return await self._after_commit(view, CREATED_EVENT, "New request", "Your request was submitted")

    async def edit(
        self,
        session: AsyncSession,
        kind_code: RequestKindCode,
        auth: AuthContext,
        request_id: uuid.UUID,
        data: dict[str, Any],
    ) -> RequestResponse:
        view = await request_service.edit_request(session, kind_code, auth, request_id, data)
        return await self._after_commit(view, UPDATED_EVENT, "Request edited", None)

    async def cancel(
        self,
        session: AsyncSession,
        kind_code: RequestKindCode,
        auth: AuthContext,
        request_id: uuid.UUID,
    ) -> RequestResponse:
        view = await request_service.cancel_request(session, kind_code, auth, request_id)
        return await self._after_commit(
            view, UPDATED_EVENT, f"Request cancelled by {auth.login_id}", "Your request was cancelled"
        )

    async def decide(
        self,
        session: AsyncSession,
        kind_code: RequestKindCode,
        auth: AuthContext,
        request_id: uuid.UUID,
        role: ApprovalRole,
        payload: DecisionPayload,
    ) -> RequestResponse:
        view = await request_service.decide_request(session, kind_code, auth, request_id, role, payload)
        verb = "approved" if payload.action is Decision.APPROVE else "rejected"
        return await self._after_commit(
            view,
            UPDATED_EVENT,
            f"{role.value} {auth.login_id} {verb}",
            f"Your request was {verb} by {role.value}",
        )
