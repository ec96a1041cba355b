from __future__ import annotations

import enum
import logging
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from approval_engine.models.audit import AuditLog

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlmodel import SQLModel

    from approval_engine.models.enums import AuditAction, AuditEntityType
    from approval_engine.models.request import ApprovalRequest, ApprovalSlot

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def model_to_audit_dict(model: SQLModel) -> dict[str, Any]:
    """Serialize a SQLModel instance to a JSON-safe dict for audit logging."""
    return {key: _json_safe(value) for key, value in model.model_dump().items()}


def request_snapshot(request: ApprovalRequest, slots: Iterable[ApprovalSlot]) -> dict[str, Any]:
    """A request row with its approval slots nested under ``approvals``."""
    data = model_to_audit_dict(request)
    data["approvals"] = [model_to_audit_dict(slot) for slot in slots]
    return data


async def write_audit_log(
    session: AsyncSession,
    *,
    actor_login_id: str,
    entity_type: AuditEntityType,
    entity_id: uuid.UUID | str,
    action: AuditAction,
    before_json: dict[str, Any] | None = None,
    after_json: dict[str, Any] | None = None,
) -> AuditLog:
    """Stage an audit entry in the caller's transaction; it commits or rolls back with the mutation."""
    entry = AuditLog(
        actor_login_id=actor_login_id,
        entity_type=entity_type.value,
        entity_id=str(entity_id),
        action=action.value,
        before_json=before_json,
        after_json=after_json,
    )
    session.add(entry)
    logger.debug("audit %s %s %s by %s", entity_type.value, entity_id, action.value, actor_login_id)
    return entry
