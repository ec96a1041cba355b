from __future__ import annotations

from pydantic import BaseModel

from approval_engine.models.enums import ActorRole


class AuthContext(BaseModel):
    """Acting user as supplied by the identity provider."""

    login_id: str
    employee_id: str
    roles: frozenset[ActorRole] = frozenset()


def parse_roles(raw: str | None) -> frozenset[ActorRole]:
    """Parse a comma-separated role header; unknown role names are dropped."""
    roles: set[ActorRole] = set()
    for part in (raw or "").split(","):
        value = part.strip().upper()
        if value in ActorRole.__members__:
            roles.add(ActorRole(value))
    return frozenset(roles)
