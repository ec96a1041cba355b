# ruff: noqa: TC003
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from approval_engine.models.enums import ApprovalMode


class UpsertProfileRequest(BaseModel):
    """Request body for setting an employee's approval routing.

    ``approval_mode`` is normalized on save; blank or unknown values fall
    back to the configured default mode.
    """

    approval_mode: str | None = Field(default=None, max_length=50)
    manager_login_id: str | None = Field(default=None, max_length=100)
    gm_login_id: str | None = Field(default=None, max_length=100)
    coo_login_id: str | None = Field(default=None, max_length=100)


class ProfileResponse(BaseModel):
    """Response schema for an approval profile."""

    employee_id: str
    approval_mode: ApprovalMode
    manager_login_id: str
    gm_login_id: str
    coo_login_id: str
    updated_by: str
    updated_at: datetime
