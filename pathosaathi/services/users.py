"""
User Management

Staff accounts are created in the tenant their role belongs to (see
ModelRouter.get_tenant_prefix_for_user). Listing is scoped to the caller:

- SUPERADMIN / CUSTOMER_SUPPORT: every user in the caller's tenant
- PARTNER: users of the caller's partner
- LAB_OWNER: users of the caller's lab
"""
from typing import List, Optional, Tuple
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from pathosaathi.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from pathosaathi.core.permissions import can_assign_role, is_superadmin
from pathosaathi.core.security import get_password_hash
from pathosaathi.models.user import LAB_ROLES, UserRole
from pathosaathi.schemas.user import UserCreate
from pathosaathi.services.auth import AuthenticatedUser
from pathosaathi.services.identifiers import IdentifierGenerator
from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.tenant_config import ROOT_TENANT
from pathosaathi.utils.logging import log_security_event

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, models: ModelRouter, identifiers: IdentifierGenerator):
        self.models = models
        self.identifiers = identifiers

    def _scoped_query(self, db: Session, current: AuthenticatedUser):
        User = self.models.get(current.tenant_prefix, "User")
        query = db.query(User)
        if current.role == UserRole.PARTNER:
            query = query.filter(User.partner_id == current.partner_id)
        elif current.role in LAB_ROLES:
            query = query.filter(User.lab_id == current.lab_id)
        return User, query

    def list_users(
        self,
        db: Session,
        current: AuthenticatedUser,
        page: int = 1,
        page_size: int = 10,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List, int]:
        User, query = self._scoped_query(db, current)
        if role:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)

        total = query.count()
        users = (
            query.order_by(User.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return users, total

    def get_user(self, db: Session, current: AuthenticatedUser, user_id: str):
        User, query = self._scoped_query(db, current)
        user = query.filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _resolve_owner(self, current: AuthenticatedUser, data: UserCreate) -> Tuple[Optional[str], Optional[str]]:
        """partner_id and lab_id for the new user. Only SUPERADMIN may pick a partner."""
        if is_superadmin(current):
            partner_id = data.partner_id
        else:
            partner_id = current.partner_id

        lab_id = data.lab_id
        if current.role in LAB_ROLES:
            lab_id = current.lab_id
        return partner_id, lab_id

    def create_user(self, db: Session, current: AuthenticatedUser, data: UserCreate):
        role = UserRole(data.role)
        if not can_assign_role(current, role):
            log_security_event(
                "privilege_escalation",
                {"user_id": current.id, "requested_role": role.value},
                logger,
            )
            raise AuthorizationError(
                "Cannot create a user with a higher role than your own",
                error_code="INSUFFICIENT_ROLE",
            )

        partner_id, lab_id = self._resolve_owner(current, data)
        if role in LAB_ROLES and not lab_id:
            raise ValidationError(f"lab_id is required for {role.value} users", details={"field": "lab_id"})
        if role == UserRole.PARTNER and not partner_id:
            raise ValidationError("partner_id is required for PARTNER users", details={"field": "partner_id"})

        partner = None
        if partner_id:
            Partner = self.models.get(ROOT_TENANT, "Partner")
            partner = db.query(Partner).filter(Partner.id == partner_id).first()
            if partner is None:
                raise NotFoundError("Partner not found")

        tenant_prefix = self.models.get_tenant_prefix_for_user(role, partner)
        User = self.models.get(tenant_prefix, "User")

        if lab_id:
            Lab = self.models.get(tenant_prefix, "Lab")
            lab = db.query(Lab).filter(Lab.id == lab_id).first()
            if lab is None or (partner_id and lab.partner_id != partner_id):
                raise NotFoundError("Lab not found")

        email = data.email.lower() if data.email else None
        self._check_unique(db, tenant_prefix, email, data.phone)

        user = User(
            identifier=self.identifiers.next_identifier(db, tenant_prefix, "User"),
            name=data.name,
            email=email,
            phone=data.phone,
            hashed_password=get_password_hash(data.password),
            role=role,
            lab_id=lab_id if role in LAB_ROLES else None,
            partner_id=partner_id,
            is_active=True,
        )
        db.add(user)
        db.commit()

        logger.info(
            f"User created: {user.id} by {current.id}",
            extra={"user_id": current.id, "tenant_prefix": tenant_prefix},
        )
        return user

    def _check_unique(self, db: Session, tenant_prefix: str, email: Optional[str], phone: Optional[str]) -> None:
        """Email and phone must be unique across the tenant and PS_ROOT, since login searches both."""
        for tenant in dict.fromkeys((tenant_prefix, ROOT_TENANT)):
            User = self.models.get(tenant, "User")
            criteria = []
            if email:
                criteria.append(User.email == email)
            if phone:
                criteria.append(User.phone == phone)
            existing = db.query(User).filter(or_(*criteria)).first()
            if existing is not None:
                field = "email" if email and existing.email == email else "phone"
                raise ConflictError(f"User with this {field} already exists", details={"field": field})
