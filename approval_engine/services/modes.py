"""Approval mode resolution.

Maps a configured approval mode onto its ordered participant roles and the
status a new request starts in, and pins the approver logins a request
carries for its whole lifetime.
"""

from __future__ import annotations

from dataclasses import dataclass

from approval_engine.config import get_settings
from approval_engine.exceptions import ConfigurationError
from approval_engine.models.enums import ApprovalMode, ApprovalRole, RequestStatus

MODE_CHAINS: dict[ApprovalMode, tuple[ApprovalRole, ...]] = {
    ApprovalMode.MANAGER_AND_GM: (ApprovalRole.MANAGER, ApprovalRole.GM),
    ApprovalMode.MANAGER_AND_COO: (ApprovalRole.MANAGER, ApprovalRole.COO),
    ApprovalMode.GM_AND_COO: (ApprovalRole.GM, ApprovalRole.COO),
    ApprovalMode.MANAGER_ONLY: (ApprovalRole.MANAGER,),
    ApprovalMode.GM_ONLY: (ApprovalRole.GM,),
}

PENDING_STATUS_FOR_ROLE: dict[ApprovalRole, RequestStatus] = {
    ApprovalRole.MANAGER: RequestStatus.PENDING_MANAGER,
    ApprovalRole.GM: RequestStatus.PENDING_GM,
    ApprovalRole.COO: RequestStatus.PENDING_COO,
}

ROLE_FOR_PENDING_STATUS: dict[RequestStatus, ApprovalRole] = {v: k for k, v in PENDING_STATUS_FOR_ROLE.items()}

_ROLE_LABELS = {ApprovalRole.MANAGER: "Manager", ApprovalRole.GM: "GM", ApprovalRole.COO: "COO"}


@dataclass(frozen=True)
class ResolvedRoute:
    """Approval routing fixed onto a request when it is created."""

    mode: ApprovalMode
    chain: tuple[ApprovalRole, ...]
    logins: dict[ApprovalRole, str]
    initial_status: RequestStatus

    @property
    def manager_login_id(self) -> str:
        return self.logins.get(ApprovalRole.MANAGER, "")

    @property
    def gm_login_id(self) -> str:
        return self.logins.get(ApprovalRole.GM, "")

    @property
    def coo_login_id(self) -> str:
        return self.logins.get(ApprovalRole.COO, "")


def normalize_mode(raw: str | ApprovalMode | None) -> ApprovalMode:
    """Normalize a stored or submitted mode; blank or unknown falls back to the configured default."""
    value = str(raw or "").strip().upper()
    try:
        return ApprovalMode(value)
    except ValueError:
        return ApprovalMode(get_settings().default_approval_mode)


def chain_for(mode: ApprovalMode) -> tuple[ApprovalRole, ...]:
    return MODE_CHAINS[mode]


def mode_includes(mode: ApprovalMode, role: ApprovalRole) -> bool:
    return role in MODE_CHAINS[mode]


def modes_including(role: ApprovalRole) -> list[ApprovalMode]:
    """All modes whose chain contains the given role, in declaration order."""
    return [mode for mode, chain in MODE_CHAINS.items() if role in chain]


def initial_status(mode: ApprovalMode) -> RequestStatus:
    return PENDING_STATUS_FOR_ROLE[MODE_CHAINS[mode][0]]


def next_role(mode: ApprovalMode, role: ApprovalRole) -> ApprovalRole | None:
    """Role that decides after ``role`` in this mode, or None when ``role`` is last."""
    chain = MODE_CHAINS[mode]
    idx = chain.index(role)
    return chain[idx + 1] if idx + 1 < len(chain) else None


def clear_unused_logins(
    mode: ApprovalMode,
    manager_login_id: str | None,
    gm_login_id: str | None,
    coo_login_id: str | None,
) -> dict[ApprovalRole, str]:
    """Trim supplied logins and blank out every role the mode does not use."""
    supplied = {
        ApprovalRole.MANAGER: (manager_login_id or "").strip(),
        ApprovalRole.GM: (gm_login_id or "").strip(),
        ApprovalRole.COO: (coo_login_id or "").strip(),
    }
    chain = MODE_CHAINS[mode]
    return {role: (login if role in chain else "") for role, login in supplied.items()}


def resolve_route(
    raw_mode: str | ApprovalMode | None,
    manager_login_id: str | None,
    gm_login_id: str | None,
    coo_login_id: str | None,
) -> ResolvedRoute:
    """Resolve a profile's routing into the chain a new request will follow.

    Raises ConfigurationError when a role the mode requires has no approver.
    """
    mode = normalize_mode(raw_mode)
    logins = clear_unused_logins(mode, manager_login_id, gm_login_id, coo_login_id)
    chain = MODE_CHAINS[mode]
    for role in chain:
        if not logins[role]:
            raise ConfigurationError(f"{_ROLE_LABELS[role]} approver is missing in profile (mode {mode.value})")
    return ResolvedRoute(mode=mode, chain=chain, logins=logins, initial_status=initial_status(mode))
