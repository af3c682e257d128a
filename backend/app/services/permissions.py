"""Role and resource checks."""

from typing import Protocol

from app.models.user import ROLE_ADMIN

# Actions a citizen may perform per resource. Admins bypass this table.
CITIZEN_ACCESS: dict[str, frozenset[str]] = {
    "news": frozenset({"read"}),
    "feedback": frozenset({"read", "create"}),
    "help-request": frozenset({"create"}),
    "profile": frozenset({"read", "update"}),
}


class HasRole(Protocol):
    role: str


def has_role(user: HasRole, role: str) -> bool:
    """True if ``user`` holds ``role``.

    Admins satisfy every role; only admins satisfy ``admin``.
    """
    if role == ROLE_ADMIN:
        return user.role == ROLE_ADMIN
    return user.role == role or user.role == ROLE_ADMIN


def can_access(user: HasRole, resource: str, action: str = "read") -> bool:
    if user.role == ROLE_ADMIN:
        return True
    allowed = CITIZEN_ACCESS.get(resource)
    return allowed is not None and action in allowed
