"""
User Model

Users are TENANT-scoped. Platform staff (SUPERADMIN, CUSTOMER_SUPPORT) and
partner owners live in PS_ROOT_User; lab staff of a partner live in that
partner's tenant tables.

Login state (attempt counter, lock window, last login) is kept on the row
itself and mutated by the auth service.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Enum as SQLEnum
from sqlalchemy.orm import declared_attr
from datetime import datetime, timedelta
from typing import Optional
import enum

from pathosaathi.models.base import TenantEntity, reference_column


class UserRole(str, enum.Enum):
    """
    User roles for RBAC.

    SUPERADMIN: Platform operator, full access everywhere
    PARTNER: Owner of a partner tenant
    CUSTOMER_SUPPORT: Platform support staff
    LAB_OWNER: Owner of a lab, manages lab staff
    RECEPTION: Lab front desk
    TECH: Lab technician
    """
    SUPERADMIN = "SUPERADMIN"
    PARTNER = "PARTNER"
    LAB_OWNER = "LAB_OWNER"
    TECH = "TECH"
    RECEPTION = "RECEPTION"
    CUSTOMER_SUPPORT = "CUSTOMER_SUPPORT"


# Lowest to highest
ROLE_HIERARCHY = [
    UserRole.TECH,
    UserRole.RECEPTION,
    UserRole.LAB_OWNER,
    UserRole.CUSTOMER_SUPPORT,
    UserRole.PARTNER,
    UserRole.SUPERADMIN,
]

LAB_ROLES = (UserRole.LAB_OWNER, UserRole.TECH, UserRole.RECEPTION)
PLATFORM_ROLES = (UserRole.SUPERADMIN, UserRole.CUSTOMER_SUPPORT)


def role_rank(role) -> int:
    return ROLE_HIERARCHY.index(UserRole(role))


def has_role_permission(user_role, required_role) -> bool:
    """True when `user_role` sits at or above `required_role` in the hierarchy."""
    return role_rank(user_role) >= role_rank(required_role)


class UserFields(TenantEntity):
    name = Column(String(255), nullable=False)

    # Either email or phone identifies the user at login
    email = Column(String(255), nullable=True, unique=True, index=True)
    phone = Column(String(15), nullable=True, unique=True, index=True)
    hashed_password = Column(String(255), nullable=True)

    role = Column(SQLEnum(UserRole, native_enum=False, length=32), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    email_verified = Column(Boolean, default=False, nullable=False)
    phone_verified = Column(Boolean, default=False, nullable=False)

    last_login_at = Column(DateTime, nullable=True)
    login_attempts = Column(Integer, default=0, nullable=False)
    lock_until = Column(DateTime, nullable=True)
    ip_address = Column(String(64), nullable=True)

    @declared_attr
    def lab_id(cls):
        return reference_column(cls, "Lab", ondelete="SET NULL")

    @declared_attr
    def partner_id(cls):
        return reference_column(cls, "Partner", ondelete="SET NULL")

    def has_permission(self, required_role: UserRole) -> bool:
        return has_role_permission(self.role, required_role)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return self.lock_until is not None and self.lock_until > now

    def register_failed_login(
        self,
        max_attempts: int,
        lock_duration: timedelta,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Count a failed password check.

        An expired lock restarts the count at 1. Reaching `max_attempts`
        locks the account for `lock_duration`.
        """
        now = now or datetime.utcnow()

        if self.lock_until is not None and self.lock_until < now:
            self.login_attempts = 1
            self.lock_until = None
            return

        self.login_attempts = (self.login_attempts or 0) + 1
        if self.login_attempts >= max_attempts and not self.is_locked(now):
            self.lock_until = now + lock_duration

    def reset_login_attempts(self) -> None:
        self.login_attempts = 0
        self.lock_until = None
