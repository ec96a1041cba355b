# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Query, status

from approval_engine.api.deps import AuthDep, DispatcherDep
from approval_engine.db import SessionDep
from approval_engine.exceptions import NotFoundError
from approval_engine.models.enums import ApprovalRole, InboxScope, RequestKindCode
from approval_engine.schemas.request import DecisionPayload, RequestListResponse, RequestResponse
from approval_engine.services import visibility

KIND_PREFIXES: dict[RequestKindCode, str] = {
    RequestKindCode.LEAVE: "/leave-requests",
    RequestKindCode.FORGET_SCAN: "/forget-scans",
    RequestKindCode.SWAP_DAY: "/swap-days",
}


def _parse_stage(stage: str) -> ApprovalRole:
    try:
        return ApprovalRole(stage.strip().upper())
    except ValueError:
        raise NotFoundError(f"Unknown approval stage {stage!r}") from None


def _parse_scope(scope: str | None) -> InboxScope:
    return InboxScope.ALL if (scope or "").strip().upper() == InboxScope.ALL else InboxScope.PENDING


def build_requests_router(kind_code: RequestKindCode) -> APIRouter:
    """Build the full set of request endpoints for one request kind."""
    router = APIRouter(prefix=KIND_PREFIXES[kind_code], tags=[kind_code.value.lower().replace("_", "-")])

    @router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
    async def create_request(
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
        payload: dict[str, Any] = Body(),
    ) -> RequestResponse:
        """Submit a new request for the calling employee."""
        return await dispatcher.create(session, kind_code, auth, payload)

    @router.get("/mine", response_model=RequestListResponse)
    async def list_my_requests(
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
    ) -> RequestListResponse:
        """List the caller's own requests, newest first."""
        views = await visibility.list_mine(session, kind_code, auth)
        items = await dispatcher.enrich(views)
        return RequestListResponse(items=items, total=len(items))

    @router.get("/inbox/{stage}", response_model=RequestListResponse)
    async def list_inbox(
        stage: str,
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
        scope: str | None = Query(default=None),
    ) -> RequestListResponse:
        """Manager, GM or COO inbox; admin viewers may pass scope=ALL for stage history."""
        views = await visibility.list_inbox(session, kind_code, auth, _parse_stage(stage), _parse_scope(scope))
        items = await dispatcher.enrich(views)
        return RequestListResponse(items=items, total=len(items))

    @router.get("", response_model=RequestListResponse)
    async def admin_list_requests(
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
        employee_id: str | None = Query(default=None),
        status_filter: str | None = Query(default=None, alias="status"),
        date_from: date | None = Query(default=None, alias="from"),
        date_to: date | None = Query(default=None, alias="to"),
        limit: int | None = Query(default=None, ge=1),
        skip: int = Query(default=0, ge=0),
    ) -> RequestListResponse:
        """List requests with optional filters (admin viewers only)."""
        views, total = await visibility.admin_list(
            session,
            kind_code,
            auth,
            employee_id=employee_id,
            status_filter=status_filter,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            skip=skip,
        )
        return RequestListResponse(items=await dispatcher.enrich(views), total=total)

    @router.get("/{request_id}", response_model=RequestResponse)
    async def get_request(
        request_id: uuid.UUID,
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
    ) -> RequestResponse:
        """Get a single request visible to the caller."""
        view = await visibility.get_visible_request(session, kind_code, auth, request_id)
        return await dispatcher.enrich_one(view)

    @router.patch("/{request_id}", response_model=RequestResponse)
    async def edit_request(
        request_id: uuid.UUID,
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
        payload: dict[str, Any] = Body(),
    ) -> RequestResponse:
        """Edit the subject of one's own request before any approver has acted."""
        return await dispatcher.edit(session, kind_code, auth, request_id, payload)

    @router.post("/{request_id}/cancel", response_model=RequestResponse)
    async def cancel_request(
        request_id: uuid.UUID,
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
    ) -> RequestResponse:
        """Cancel a pending request (owner, or an admin viewer on their behalf)."""
        return await dispatcher.cancel(session, kind_code, auth, request_id)

    @router.post("/{request_id}/decisions/{stage}", response_model=RequestResponse)
    async def decide_request(
        request_id: uuid.UUID,
        stage: str,
        payload: DecisionPayload,
        session: SessionDep,
        auth: AuthDep,
        dispatcher: DispatcherDep,
    ) -> RequestResponse:
        """Approve or reject as the assigned manager, GM or COO."""
        return await dispatcher.decide(session, kind_code, auth, request_id, _parse_stage(stage), payload)

    return router


leave_requests_router = build_requests_router(RequestKindCode.LEAVE)
forget_scans_router = build_requests_router(RequestKindCode.FORGET_SCAN)
swap_days_router = build_requests_router(RequestKindCode.SWAP_DAY)
