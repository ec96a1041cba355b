from __future__ import annotations

from typing import TYPE_CHECKING

from approval_engine.exceptions import NotFoundError
from approval_engine.models.base import utc_now
from approval_engine.models.enums import ApprovalMode, ApprovalRole, AuditAction, AuditEntityType
from approval_engine.models.profile import ApprovalProfile
from approval_engine.schemas.profile import ProfileResponse
from approval_engine.services.audit import model_to_audit_dict, write_audit_log
from approval_engine.services.modes import clear_unused_logins, normalize_mode

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from approval_engine.schemas.auth import AuthContext
    from approval_engine.schemas.profile import UpsertProfileRequest


def _build_profile_response(profile: ApprovalProfile) -> ProfileResponse:
    return ProfileResponse(
        employee_id=profile.employee_id,
        approval_mode=ApprovalMode(profile.approval_mode),
        manager_login_id=profile.manager_login_id,
        gm_login_id=profile.gm_login_id,
        coo_login_id=profile.coo_login_id,
        updated_by=profile.updated_by,
        updated_at=profile.updated_at,
    )


async def get_profile_row(session: AsyncSession, employee_id: str) -> ApprovalProfile | None:
    return await session.get(ApprovalProfile, employee_id.strip())


async def get_profile(session: AsyncSession, employee_id: str) -> ProfileResponse:
    """Get an employee's approval profile. Raises 404 if none is configured."""
    profile = await get_profile_row(session, employee_id)
    if profile is None:
        raise NotFoundError("Approval profile not found")
    return _build_profile_response(profile)


async def upsert_profile(
    session: AsyncSession,
    auth: AuthContext,
    employee_id: str,
    payload: UpsertProfileRequest,
) -> ProfileResponse:
    """Create or replace an employee's approval routing.

    Changing a profile never touches requests already in flight; each
    request keeps the approvers copied onto it at creation.
    """
    employee_id = employee_id.strip()
    mode = normalize_mode(payload.approval_mode)
    logins = clear_unused_logins(mode, payload.manager_login_id, payload.gm_login_id, payload.coo_login_id)

    profile = await get_profile_row(session, employee_id)
    before = model_to_audit_dict(profile) if profile is not None else None
    if profile is None:
        profile = ApprovalProfile(employee_id=employee_id)
        session.add(profile)

    profile.approval_mode = mode.value
    profile.manager_login_id = logins[ApprovalRole.MANAGER]
    profile.gm_login_id = logins[ApprovalRole.GM]
    profile.coo_login_id = logins[ApprovalRole.COO]
    profile.updated_by = auth.login_id
    profile.updated_at = utc_now()
    await session.flush()

    await write_audit_log(
        session,
        actor_login_id=auth.login_id,
        entity_type=AuditEntityType.PROFILE,
        entity_id=employee_id,
        action=AuditAction.CREATE if before is None else AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(profile),
    )

    await session.commit()
    await session.refresh(profile)
    return _build_profile_response(profile)
