from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from approval_engine.models.base import login_field, utc_now
from approval_engine.models.enums import ApprovalMode


class ApprovalProfile(SQLModel, table=True):
    """Per-employee approval routing copied onto each request at creation time."""

    __tablename__ = "approval_profile"

    employee_id: str = login_field(primary_key=True)
    approval_mode: str = Field(default=ApprovalMode.MANAGER_AND_GM, max_length=50)
    manager_login_id: str = login_field(default="")
    gm_login_id: str = login_field(default="")
    coo_login_id: str = login_field(default="")
    updated_by: str = login_field(default="")
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": sa.func.now()},
    )
