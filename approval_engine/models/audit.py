from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from approval_engine.models.base import CreatedAtMixin, UUIDBase, login_field


class AuditLog(UUIDBase, CreatedAtMixin, table=True):
    """Append-only trail of request and profile mutations, written in the mutating transaction."""

    __tablename__ = "audit_log"
    __table_args__ = (
        sa.Index("ix_audit_entity", "entity_type", "entity_id"),
        sa.Index("ix_audit_actor", "actor_login_id"),
    )

    actor_login_id: str = login_field()
    entity_type: str = Field(max_length=50)
    # Request UUIDs and employee ids share this column.
    entity_id: str = login_field()
    action: str = Field(max_length=50)
    before_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    after_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
