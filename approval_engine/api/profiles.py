from __future__ import annotations

from fastapi import APIRouter

from approval_engine.api.deps import AdminViewerDep, AuthDep
from approval_engine.db import SessionDep
from approval_engine.schemas.profile import ProfileResponse, UpsertProfileRequest
from approval_engine.services.profile import get_profile, upsert_profile

profiles_router = APIRouter(prefix="/approval-profiles", tags=["approval-profiles"])


@profiles_router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    session: SessionDep,
    auth: AuthDep,
) -> ProfileResponse:
    """Get the caller's own approval routing."""
    return await get_profile(session, auth.employee_id)


@profiles_router.get("/{employee_id}", response_model=ProfileResponse)
async def get_employee_profile(
    employee_id: str,
    session: SessionDep,
    auth: AdminViewerDep,
) -> ProfileResponse:
    """Get an employee's approval routing (admin viewers only)."""
    return await get_profile(session, employee_id)


@profiles_router.put("/{employee_id}", response_model=ProfileResponse)
async def put_employee_profile(
    employee_id: str,
    payload: UpsertProfileRequest,
    session: SessionDep,
    auth: AdminViewerDep,
) -> ProfileResponse:
    """Create or replace an employee's approval routing (admin viewers only)."""
    return await upsert_profile(session, auth, employee_id, payload)
