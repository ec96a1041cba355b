from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

LOGIN_ID_MAX_LENGTH = 100


def utc_now() -> datetime:
    """Timezone-aware current time; every stored timestamp is UTC."""
    return datetime.now(UTC)


def login_field(**kwargs: Any) -> Any:
    """A login or employee identifier column. Empty string means unassigned."""
    kwargs.setdefault("max_length", LOGIN_ID_MAX_LENGTH)
    return Field(**kwargs)


def moment_field(**kwargs: Any) -> Any:
    """A nullable UTC timestamp that is set when something happens (reached, acted, cancelled)."""
    return Field(default=None, sa_type=sa.DateTime(timezone=True), **kwargs)  # ty: ignore[invalid-argument-type]


class UUIDBase(SQLModel):
    """Base model with UUID primary key."""

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        sa_type=sa.Uuid,
    )


class CreatedAtMixin(SQLModel):
    """Indexed creation timestamp; listings sort newest first on it."""

    created_at: datetime = Field(
        default_factory=utc_now,
        index=True,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )


class TimestampMixin(CreatedAtMixin):
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
