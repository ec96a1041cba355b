from __future__ import annotations

import enum


class ApprovalRole(enum.StrEnum):
    """A decision-making stage in the approval chain."""

    MANAGER = "MANAGER"
    GM = "GM"
    COO = "COO"


class ApprovalMode(enum.StrEnum):
    """Configured set of approval roles and the order they decide in."""

    MANAGER_AND_GM = "MANAGER_AND_GM"
    MANAGER_AND_COO = "MANAGER_AND_COO"
    GM_AND_COO = "GM_AND_COO"
    MANAGER_ONLY = "MANAGER_ONLY"
    GM_ONLY = "GM_ONLY"


class RequestStatus(enum.StrEnum):
    """State machine for approval requests."""

    PENDING_MANAGER = "PENDING_MANAGER"
    PENDING_GM = "PENDING_GM"
    PENDING_COO = "PENDING_COO"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_pending(self) -> bool:
        return self in PENDING_STATUSES


TERMINAL_STATUSES = frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED})
PENDING_STATUSES = frozenset({RequestStatus.PENDING_MANAGER, RequestStatus.PENDING_GM, RequestStatus.PENDING_COO})

# Statuses that block a second request with the same natural key.
LIVE_STATUSES = frozenset(PENDING_STATUSES | {RequestStatus.APPROVED})


class SlotStatus(enum.StrEnum):
    """Decision state of one role's slot in the approval ledger."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Decision(enum.StrEnum):
    """Action a decision-maker takes on a pending request."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


class RequestKindCode(enum.StrEnum):
    """Kinds of employee request that share the approval workflow."""

    LEAVE = "LEAVE"
    FORGET_SCAN = "FORGET_SCAN"
    SWAP_DAY = "SWAP_DAY"


class ForgotType(enum.StrEnum):
    """Which clock event an attendance correction covers."""

    FORGET_IN = "FORGET_IN"
    FORGET_OUT = "FORGET_OUT"


class DayPart(enum.StrEnum):
    AM = "AM"
    PM = "PM"


class ActorRole(enum.StrEnum):
    """Roles supplied by the identity provider."""

    LEAVE_USER = "LEAVE_USER"
    LEAVE_MANAGER = "LEAVE_MANAGER"
    LEAVE_GM = "LEAVE_GM"
    LEAVE_COO = "LEAVE_COO"
    LEAVE_ADMIN = "LEAVE_ADMIN"
    ADMIN = "ADMIN"
    ROOT_ADMIN = "ROOT_ADMIN"


ADMIN_VIEWER_ROLES = frozenset({ActorRole.LEAVE_ADMIN, ActorRole.ADMIN, ActorRole.ROOT_ADMIN})


class InboxScope(enum.StrEnum):
    """Admin inbox toggle: current queue only, or full stage history."""

    PENDING = "PENDING"
    ALL = "ALL"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    REQUEST = "REQUEST"
    PROFILE = "PROFILE"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
