"""
Permission System (RBAC)

Role hierarchy, lowest to highest:

    TECH < RECEPTION < LAB_OWNER < CUSTOMER_SUPPORT < PARTNER < SUPERADMIN

A role satisfies a requirement when it sits at or above the required role.
Partner ownership checks (a PARTNER may only touch its own partner record)
live here too so endpoints share one rule.
"""
from typing import Any, Iterable

from pathosaathi.core.exceptions import AuthorizationError
from pathosaathi.models.user import UserRole, has_role_permission


def require_role(user: Any, required_role: UserRole) -> None:
    """Raise AuthorizationError unless `user.role` is at least `required_role`."""
    if not has_role_permission(user.role, required_role):
        raise AuthorizationError(
            f"This action requires {UserRole(required_role).value} role or higher",
            error_code="INSUFFICIENT_ROLE",
        )


def require_any_role(user: Any, roles: Iterable[UserRole]) -> None:
    roles = [UserRole(role) for role in roles]
    if UserRole(user.role) not in roles:
        raise AuthorizationError(
            f"Access denied. Required roles: {', '.join(role.value for role in roles)}",
            error_code="INSUFFICIENT_ROLE",
        )


def is_superadmin(user: Any) -> bool:
    return UserRole(user.role) == UserRole.SUPERADMIN


def can_manage_partner(user: Any, partner_id: str) -> bool:
    """SUPERADMIN manages every partner; others only their own."""
    return is_superadmin(user) or (user.partner_id is not None and user.partner_id == partner_id)


def can_assign_role(user: Any, role: UserRole) -> bool:
    """Users may create accounts at or below their own level."""
    return has_role_permission(user.role, role)
