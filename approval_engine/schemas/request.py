# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from approval_engine.models.enums import (
    ApprovalMode,
    ApprovalRole,
    Decision,
    RequestKindCode,
    RequestStatus,
    SlotStatus,
)

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------

_ACTION_ALIASES = {"APPROVED": "APPROVE", "REJECTED": "REJECT"}


class DecisionPayload(BaseModel):
    """Request body for a manager, GM or COO decision."""

    action: Decision
    comment: str | None = Field(default=None, max_length=2000)

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            raw = value.strip().upper()
            return _ACTION_ALIASES.get(raw, raw)
        return value


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SlotResponse(BaseModel):
    """One role's decision record."""

    role: ApprovalRole
    login_id: str
    slot_status: SlotStatus
    reached_at: datetime | None
    acted_at: datetime | None
    note: str


class RequestResponse(BaseModel):
    """Response schema for a single approval request, enriched with directory data."""

    id: uuid.UUID
    kind: RequestKindCode
    employee_id: str
    employee_name: str = ""
    department: str = ""
    requester_login_id: str
    subject: dict[str, Any]
    summary: str
    approval_mode: ApprovalMode
    manager_login_id: str
    gm_login_id: str
    coo_login_id: str
    status: RequestStatus
    approvals: list[SlotResponse]
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None
    cancelled_by: str


class RequestListResponse(BaseModel):
    """List of approval requests."""

    items: list[RequestResponse]
    total: int
