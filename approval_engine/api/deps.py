# ruff: noqa: B008
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header

from approval_engine.exceptions import ForbiddenError, ValidationError
from approval_engine.schemas.auth import AuthContext, parse_roles
from approval_engine.services.directory import get_directory_service
from approval_engine.services.dispatcher import TransitionDispatcher
from approval_engine.services.notification import get_notifier
from approval_engine.services.realtime import get_broadcaster
from approval_engine.services.workflow import is_admin_viewer


async def get_auth_context(
    x_user_id: str = Header(),
    x_employee_id: str | None = Header(default=None),
    x_roles: str | None = Header(default=None),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    login_id = x_user_id.strip()
    if not login_id:
        raise ValidationError("Missing user identity")
    employee_id = (x_employee_id or "").strip() or login_id
    return AuthContext(login_id=login_id, employee_id=employee_id, roles=parse_roles(x_roles))


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin_viewer(
    auth: AuthDep,
) -> AuthContext:
    """Require an administrative viewer role for the request."""
    if not is_admin_viewer(auth.roles):
        raise ForbiddenError("Admin access required")
    return auth


AdminViewerDep = Annotated[AuthContext, Depends(require_admin_viewer)]


def get_dispatcher() -> TransitionDispatcher:
    """Build a dispatcher over the currently wired collaborators."""
    return TransitionDispatcher(get_directory_service(), get_notifier(), get_broadcaster())


DispatcherDep = Annotated[TransitionDispatcher, Depends(get_dispatcher)]
