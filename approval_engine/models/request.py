# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from approval_engine.models.base import TimestampMixin, UUIDBase, login_field, moment_field
from approval_engine.models.enums import LIVE_STATUSES, SlotStatus

_LIVE_PREDICATE = sa.text(
    "status IN ({})".format(", ".join(f"'{s.value}'" for s in sorted(LIVE_STATUSES)))
)


class ApprovalRequest(UUIDBase, TimestampMixin, table=True):
    """A leave, forget-scan or swap-day request and its position in the approval chain."""

    __tablename__ = "approval_request"
    __table_args__ = (
        sa.Index("ix_request_kind_status", "kind", "status"),
        sa.Index("ix_request_requester_created", "requester_login_id", "created_at"),
        sa.Index(
            "uq_request_natural_key_live",
            "employee_id",
            "subject_date_key",
            "kind_key",
            unique=True,
            postgresql_where=_LIVE_PREDICATE,
            sqlite_where=_LIVE_PREDICATE,
        ),
    )

    kind: str = Field(max_length=50)
    employee_id: str = login_field(index=True)
    requester_login_id: str = login_field()
    subject_json: dict[str, Any] = Field(default_factory=dict, sa_type=sa.JSON)
    subject_date_key: str = Field(max_length=100)
    kind_key: str = Field(max_length=100)
    approval_mode: str = Field(max_length=50)
    manager_login_id: str = login_field(default="", index=True)
    gm_login_id: str = login_field(default="", index=True)
    coo_login_id: str = login_field(default="", index=True)
    status: str = Field(max_length=50, index=True)
    cancelled_at: datetime | None = moment_field()
    cancelled_by: str = login_field(default="")

    @property
    def natural_key(self) -> str:
        return f"{self.employee_id}|{self.subject_date_key}|{self.kind_key}"


class ApprovalSlot(UUIDBase, table=True):
    """One role's decision record within a request's approval ledger."""

    __tablename__ = "approval_slot"
    __table_args__ = (
        sa.UniqueConstraint("request_id", "role", name="uq_slot_request_role"),
        sa.Index("ix_slot_role_login", "role", "login_id"),
    )

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("approval_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    role: str = Field(max_length=20)
    position: int
    login_id: str = login_field()
    slot_status: str = Field(default=SlotStatus.PENDING, max_length=20)
    reached_at: datetime | None = moment_field()
    acted_at: datetime | None = moment_field()
    note: str = Field(default="")
