"""Request state machine and the capability table that guards it.

Everything here is pure: callers load the request and its slots, ask this
module whether a transition is allowed and what it leads to, and then apply
the result through a conditional update.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from approval_engine.exceptions import EditNotAllowedError, ForbiddenError, InvalidStateError, ValidationError
from approval_engine.models.enums import (
    ADMIN_VIEWER_ROLES,
    ActorRole,
    ApprovalRole,
    Decision,
    RequestStatus,
    SlotStatus,
)
from approval_engine.services.modes import PENDING_STATUS_FOR_ROLE, mode_includes, next_role, normalize_mode

if TYPE_CHECKING:
    from approval_engine.models.request import ApprovalRequest, ApprovalSlot
    from approval_engine.schemas.auth import AuthContext

_ALL_STAGES = frozenset(ApprovalRole)
_NO_STAGES: frozenset[ApprovalRole] = frozenset()


@dataclass(frozen=True)
class Capability:
    view: frozenset[ApprovalRole]
    decide: frozenset[ApprovalRole]


# Admin viewers read every stage and decide on none.
CAPABILITIES: dict[ActorRole, Capability] = {
    ActorRole.LEAVE_USER: Capability(view=_NO_STAGES, decide=_NO_STAGES),
    ActorRole.LEAVE_MANAGER: Capability(view=frozenset({ApprovalRole.MANAGER}), decide=frozenset({ApprovalRole.MANAGER})),
    ActorRole.LEAVE_GM: Capability(view=frozenset({ApprovalRole.GM}), decide=frozenset({ApprovalRole.GM})),
    ActorRole.LEAVE_COO: Capability(view=frozenset({ApprovalRole.COO}), decide=frozenset({ApprovalRole.COO})),
    ActorRole.LEAVE_ADMIN: Capability(view=_ALL_STAGES, decide=_NO_STAGES),
    ActorRole.ADMIN: Capability(view=_ALL_STAGES, decide=_NO_STAGES),
    ActorRole.ROOT_ADMIN: Capability(view=_ALL_STAGES, decide=_NO_STAGES),
}

_STAGE_LABELS = {ApprovalRole.MANAGER: "Manager", ApprovalRole.GM: "GM", ApprovalRole.COO: "COO"}


def is_admin_viewer(roles: Iterable[ActorRole]) -> bool:
    return any(role in ADMIN_VIEWER_ROLES for role in roles)


def can_view(roles: Iterable[ActorRole], stage: ApprovalRole) -> bool:
    return any(stage in CAPABILITIES[role].view for role in roles)


def can_decide(roles: Iterable[ActorRole], stage: ApprovalRole) -> bool:
    return any(stage in CAPABILITIES[role].decide for role in roles)


@dataclass(frozen=True)
class DecisionPlan:
    """Outcome of an authorized decision, ready to be applied conditionally."""

    role: ApprovalRole
    decision: Decision
    expected_status: RequestStatus
    next_status: RequestStatus
    slot_status: SlotStatus
    next_pending_role: ApprovalRole | None
    note: str


def next_status_after(mode_raw: str, role: ApprovalRole, decision: Decision) -> RequestStatus:
    """Transition table keyed by (deciding role, decision) for a given mode."""
    if decision is Decision.REJECT:
        return RequestStatus.REJECTED
    following = next_role(normalize_mode(mode_raw), role)
    if following is None:
        return RequestStatus.APPROVED
    return PENDING_STATUS_FOR_ROLE[following]


def slot_for(slots: Iterable[ApprovalSlot], role: ApprovalRole) -> ApprovalSlot | None:
    for slot in slots:
        if slot.role == role:
            return slot
    return None


def any_slot_acted(slots: Iterable[ApprovalSlot]) -> bool:
    return any(slot.slot_status != SlotStatus.PENDING or slot.acted_at is not None for slot in slots)


def plan_decision(
    request: ApprovalRequest,
    slots: list[ApprovalSlot],
    auth: AuthContext,
    role: ApprovalRole,
    decision: Decision,
    comment: str | None,
) -> DecisionPlan:
    """Authorize a decision and compute the transition it triggers.

    The actor must hold the deciding role itself, must be the login assigned
    to this request's slot for that role, and the request must currently be
    pending at that role's stage.
    """
    label = _STAGE_LABELS[role]
    if not can_decide(auth.roles, role):
        raise ForbiddenError(f"Only the assigned {label} can decide at this stage")

    mode = normalize_mode(request.approval_mode)
    if not mode_includes(mode, role):
        raise InvalidStateError(f"This request does not require {label} approval.")

    slot = slot_for(slots, role)
    if slot is None or not slot.login_id or slot.login_id != auth.login_id:
        raise ForbiddenError("Not your request")

    expected = PENDING_STATUS_FOR_ROLE[role]
    if request.status != expected:
        raise InvalidStateError(
            f"Request is {request.status}. {label} can only decide when status is {expected.value}."
        )

    note = (comment or "").strip()
    if decision is Decision.REJECT and not note:
        raise ValidationError("Reject requires a reason.")

    following = next_role(mode, role) if decision is Decision.APPROVE else None
    return DecisionPlan(
        role=role,
        decision=decision,
        expected_status=expected,
        next_status=next_status_after(mode, role, decision),
        slot_status=SlotStatus.APPROVED if decision is Decision.APPROVE else SlotStatus.REJECTED,
        next_pending_role=following,
        note=note,
    )


def assert_cancellable(request: ApprovalRequest, auth: AuthContext) -> RequestStatus:
    """Check cancel rights and return the status the cancel is conditioned on."""
    if request.requester_login_id != auth.login_id and not is_admin_viewer(auth.roles):
        raise ForbiddenError("Not your request")
    current = RequestStatus(request.status)
    if current.is_terminal:
        raise InvalidStateError(f"Request is {current.value}. Cannot cancel.")
    return current


def assert_editable(request: ApprovalRequest, slots: list[ApprovalSlot], auth: AuthContext) -> RequestStatus:
    """Owner edits are allowed only while pending and before any slot has been acted on."""
    if request.requester_login_id != auth.login_id:
        raise ForbiddenError("Not your request")
    current = RequestStatus(request.status)
    if not current.is_pending:
        raise EditNotAllowedError(f"Request is {current.value}. Cannot edit.")
    if any_slot_acted(slots):
        raise EditNotAllowedError(f"Request is {current.value}. Cannot edit after any approval action.")
    return current
