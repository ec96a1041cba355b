from sqlmodel import SQLModel

from approval_engine.models.audit import AuditLog
from approval_engine.models.base import CreatedAtMixin, TimestampMixin, UUIDBase
from approval_engine.models.enums import (
    ActorRole,
    ApprovalMode,
    ApprovalRole,
    AuditAction,
    AuditEntityType,
    Decision,
    InboxScope,
    RequestKindCode,
    RequestStatus,
    SlotStatus,
)
from approval_engine.models.profile import ApprovalProfile
from approval_engine.models.request import ApprovalRequest, ApprovalSlot

__all__ = [
    "ActorRole",
    "ApprovalMode",
    "ApprovalProfile",
    "ApprovalRequest",
    "ApprovalRole",
    "ApprovalSlot",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "Decision",
    "InboxScope",
    "RequestKindCode",
    "RequestStatus",
    "SQLModel",
    "SlotStatus",
    "CreatedAtMixin",
    "TimestampMixin",
    "UUIDBase",
]
