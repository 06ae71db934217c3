"""
Authentication Service

Login, token refresh and request authentication, bound to the hostname the
request arrived on.

LOGIN FLOW:
1. Find the user by email or phone: on a partner host the partner's tenant,
   then PS_ROOT; on the main domain PS_ROOT, then the tenants of partners
   without a hostname of their own
2. Reject inactive accounts, then locked accounts (before any password check)
3. Verify the password; a miss counts toward the lock threshold
4. Apply the domain policy:
   - root users (SUPERADMIN or users of a root partner) -> main domain only
   - partner users -> one of the partner's hostnames
   - partner without hostnames, or no partner -> main domain only
5. Reset attempts, stamp last login, issue an access/refresh pair sharing
   one session id. A partner user's tokens are bound to the partner hostname
   the login was accepted on.

SECURITY: Unknown user and wrong password return the same error so the
endpoint cannot be used to enumerate accounts.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging
import uuid

from sqlalchemy import or_
from sqlalchemy.orm import Session

from pathosaathi.config import Settings
from pathosaathi.core.exceptions import (
    AuthenticationError,
    AuthErrorCode,
    AuthorizationError,
    NotFoundError,
)
from pathosaathi.core.security import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    create_token_pair,
    get_token_audience,
    validate_token_audience,
    verify_password,
    verify_token,
)
from pathosaathi.middleware.tenant import TenantContext
from pathosaathi.models.user import UserRole, has_role_permission
from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.tenant_config import ROOT_TENANT
from pathosaathi.utils.logging import log_security_event

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email/phone or password"


@dataclass(frozen=True)
class AuthenticatedUser:
    """The caller of an authenticated request, as seen by endpoints."""
    id: str
    identifier: Optional[str]
    role: UserRole
    name: str
    email: Optional[str]
    phone: Optional[str]
    partner_id: Optional[str]
    partner_domain: Optional[str]
    lab_id: Optional[str]
    is_root_user: bool
    tenant_prefix: str
    session_id: Optional[str]

    def has_permission(self, required_role: UserRole) -> bool:
        return has_role_permission(self.role, required_role)


class AuthService:
    def __init__(self, models: ModelRouter, settings: Settings, clock: Callable[[], datetime] = datetime.utcnow):
        self.models = models
        self.settings = settings
        self.clock = clock

    @property
    def platform_domain(self) -> str:
        return self.settings.APP_DOMAIN.lower()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _candidate_tenants(tenant_prefix: Optional[str]) -> List[str]:
        tenants = []
        for prefix in (tenant_prefix, ROOT_TENANT):
            if prefix and prefix not in tenants:
                tenants.append(prefix)
        return tenants

    def login_tenants(self, db: Session, context: TenantContext) -> List[str]:
        """
        Tenants searched for a login, in order.

        Lab staff of a partner without a hostname live in that partner's
        tenant but sign in on the main domain, so the main domain also
        searches those tenants after PS_ROOT.
        """
        if context.is_partner:
            return self._candidate_tenants(context.tenant_prefix)

        Partner = self.models.get(ROOT_TENANT, "Partner")
        rows = (
            db.query(Partner.tenant_prefix)
            .filter(
                Partner.is_root_tenant.is_(False),
                Partner.subdomain.is_(None),
                Partner.custom_domain.is_(None),
            )
            .order_by(Partner.created_at)
            .all()
        )
        return self._candidate_tenants(None) + [row.tenant_prefix for row in rows if row.tenant_prefix != ROOT_TENANT]

    def find_user_for_login(self, db: Session, email: Optional[str], phone: Optional[str], tenants: Iterable[str] = (ROOT_TENANT,)):
        for tenant in tenants:
            User = self.models.get(tenant, "User")
            criteria = []
            if email:
                criteria.append(User.email == email.strip().lower())
            if phone:
                criteria.append(User.phone == phone.strip())
            if not criteria:
                return None
            user = db.query(User).filter(or_(*criteria)).first()
            if user is not None:
                return user
        return None

    def find_user_by_id(self, db: Session, user_id: str, tenant_prefix: Optional[str] = None):
        for tenant in self._candidate_tenants(tenant_prefix):
            User = self.models.get(tenant, "User")
            user = db.query(User).filter(User.id == user_id).first()
            if user is not None:
                return user
        return None

    def get_partner(self, db: Session, partner_id: Optional[str]):
        if not partner_id:
            return None
        Partner = self.models.get(ROOT_TENANT, "Partner")
        return db.query(Partner).filter(Partner.id == partner_id).first()

    def get_lab(self, db: Session, user):
        if not user.lab_id:
            return None
        Lab = self.models.get(type(user).__tenant_prefix__, "Lab")
        return db.query(Lab).filter(Lab.id == user.lab_id).first()

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @staticmethod
    def is_root_user(user, partner=None) -> bool:
        if UserRole(user.role) == UserRole.SUPERADMIN:
            return True
        return partner is not None and bool(partner.is_root_tenant)

    def validate_domain_access(self, user, partner, domain: str, is_main_domain: bool) -> None:
        """Raise AuthenticationError when `user` may not sign in on `domain`."""
        domain = (domain or "").lower()
        main_domain_message = f"Please login from main domain ({self.platform_domain})"

        if self.is_root_user(user, partner):
            if not is_main_domain:
                raise AuthenticationError(
                    f"Root users must login from main domain ({self.platform_domain})",
                    error_code=AuthErrorCode.DOMAIN_MISMATCH,
                )
            return

        if partner is not None:
            if not partner.is_active:
                raise AuthenticationError("Partner account is inactive", error_code=AuthErrorCode.PARTNER_INACTIVE)

            hostnames = partner.login_hostnames(self.platform_domain)
            if not hostnames:
                if not is_main_domain:
                    raise AuthenticationError(main_domain_message, error_code=AuthErrorCode.DOMAIN_MISMATCH)
                return

            if domain not in hostnames:
                raise AuthenticationError(
                    f"Access denied. Please login from {hostnames[0]}",
                    error_code=AuthErrorCode.DOMAIN_MISMATCH,
                )
            return

        if not is_main_domain:
            raise AuthenticationError(main_domain_message, error_code=AuthErrorCode.DOMAIN_MISMATCH)

    def data_tenant_prefix(self, user, partner) -> str:
        """Tenant whose data the user works with (the token's tenant_prefix)."""
        if self.is_root_user(user, partner) or partner is None:
            return ROOT_TENANT
        return partner.tenant_prefix

    def bound_domain(self, partner, domain: Optional[str] = None) -> Optional[str]:
        """
        Partner hostname a token is bound to: `domain` when it is one of the
        partner's login hostnames, else the partner's primary domain.
        """
        if partner is None:
            return None
        hostnames = partner.login_hostnames(self.platform_domain)
        domain = (domain or "").strip().lower()
        if domain in hostnames:
            return domain
        return hostnames[0] if hostnames else None

    def build_claims(self, user, partner, session_id: str, domain: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
        is_root = self.is_root_user(user, partner)
        partner_domain = self.bound_domain(partner, domain)

        claims = {
            "user": user.id,
            "identifier": user.identifier,
            "role": UserRole(user.role).value,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "partner": partner.id if partner is not None else None,
            "partner_domain": partner_domain,
            "lab": user.lab_id,
            "is_root_user": is_root,
            "tenant_prefix": self.data_tenant_prefix(user, partner),
            "session": session_id,
        }

        # Users without a partner hostname sign in on the main domain
        audience = self.platform_domain if is_root else (partner_domain or self.platform_domain)
        return claims, audience

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def login(
        self,
        db: Session,
        password: str,
        context: TenantContext,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        now = self.clock()
        domain = context.hostname
        user = self.find_user_for_login(db, email, phone, self.login_tenants(db, context))
        if user is None:
            log_security_event("failed_login", {"reason": "user_not_found", "hostname": domain}, logger)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE, error_code=AuthErrorCode.INVALID_CREDENTIALS)

        if not user.is_active:
            log_security_event("failed_login", {"reason": "user_inactive", "user_id": user.id}, logger)
            raise AuthenticationError(
                "Your account has been deactivated. Please contact support.",
                error_code=AuthErrorCode.ACCOUNT_INACTIVE,
            )

        if user.is_locked(now):
            log_security_event("failed_login", {"reason": "account_locked", "user_id": user.id}, logger)
            raise AuthenticationError(
                "Account is temporarily locked due to too many failed login attempts. Please try again later.",
                error_code=AuthErrorCode.ACCOUNT_LOCKED,
                details={"lock_until": user.lock_until},
            )

        if not verify_password(password, user.hashed_password):
            user.register_failed_login(
                max_attempts=self.settings.MAX_LOGIN_ATTEMPTS,
                lock_duration=timedelta(minutes=self.settings.ACCOUNT_LOCK_MINUTES),
                now=now,
            )
            db.commit()
            log_security_event(
                "failed_login",
                {"reason": "invalid_password", "user_id": user.id, "attempts": user.login_attempts},
                logger,
            )
            if user.is_locked(now):
                log_security_event("account_locked", {"user_id": user.id, "lock_until": user.lock_until}, logger)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE, error_code=AuthErrorCode.INVALID_CREDENTIALS)

        partner = self.get_partner(db, user.partner_id)
        try:
            self.validate_domain_access(user, partner, domain, context.is_main_domain)
        except AuthenticationError as exc:
            log_security_event(
                "domain_mismatch",
                {"user_id": user.id, "hostname": domain, "reason": exc.error_code},
                logger,
            )
            raise

        user.reset_login_attempts()
        user.last_login_at = now
        user.ip_address = ip_address
        db.commit()

        session_id = str(uuid.uuid4())
        claims, audience = self.build_claims(user, partner, session_id, domain)
        tokens = create_token_pair(claims, audience=audience)

        logger.info(
            "Login activity",
            extra={
                "user_id": user.id,
                "session_id": session_id,
                "hostname": domain,
                "partner_id": partner.id if partner is not None else None,
                "tenant_prefix": claims["tenant_prefix"],
            },
        )

        return {
            "user": self.serialize_user(user, partner, self.get_lab(db, user)),
            "tokens": tokens,
            "session": {
                "session_id": session_id,
                "login_at": now,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "domain": domain,
            },
        }

    def refresh(self, db: Session, refresh_token: str, domain: str) -> Dict[str, Any]:
        """Re-issue a token pair from a refresh token, keeping its session id."""
        try:
            claims = verify_token(refresh_token)
        except AuthenticationError:
            raise AuthenticationError("Invalid or expired refresh token", error_code=AuthErrorCode.TOKEN_INVALID)

        if claims.get("token_type") != REFRESH_TOKEN:
            raise AuthenticationError("Invalid or expired refresh token", error_code=AuthErrorCode.TOKEN_INVALID)

        if not claims.get("is_root_user") and not validate_token_audience(refresh_token, domain):
            log_security_event("domain_mismatch", {"user_id": claims.get("user"), "hostname": domain}, logger)
            raise AuthenticationError("Token not valid for this domain", error_code=AuthErrorCode.DOMAIN_MISMATCH)

        user = self.find_user_by_id(db, claims.get("user"), claims.get("tenant_prefix"))
        if user is None or not user.is_active:
            raise AuthenticationError("User account no longer active", error_code=AuthErrorCode.ACCOUNT_INACTIVE)

        partner = self.get_partner(db, user.partner_id)
        if partner is not None and not partner.is_active:
            raise AuthenticationError("Partner account is inactive", error_code=AuthErrorCode.PARTNER_INACTIVE)

        # The new pair stays bound to the hostname the session started on
        session_id = claims.get("session") or str(uuid.uuid4())
        new_claims, audience = self.build_claims(user, partner, session_id, get_token_audience(refresh_token))
        tokens = create_token_pair(new_claims, audience=audience)
        return {"tokens": tokens, "session_id": session_id}

    def authenticate(self, db: Session, token: str, domain: str) -> AuthenticatedUser:
        """Resolve the caller of a request from its access token."""
        try:
            claims = verify_token(token)
        except AuthenticationError as exc:
            log_security_event("token_rejected", {"reason": exc.error_code, "hostname": domain}, logger)
            raise

        if claims.get("token_type") != ACCESS_TOKEN:
            raise AuthenticationError("Invalid token", error_code=AuthErrorCode.TOKEN_INVALID)

        if not claims.get("is_root_user") and not validate_token_audience(token, domain):
            log_security_event("domain_mismatch", {"user_id": claims.get("user"), "hostname": domain}, logger)
            raise AuthorizationError("Token not valid for this domain", error_code=AuthErrorCode.DOMAIN_MISMATCH)

        user = self.find_user_by_id(db, claims.get("user"), claims.get("tenant_prefix"))
        if user is None:
            raise AuthenticationError("User not found", error_code=AuthErrorCode.USER_NOT_FOUND)
        if not user.is_active:
            raise AuthenticationError("User account is inactive", error_code=AuthErrorCode.ACCOUNT_INACTIVE)

        partner = self.get_partner(db, user.partner_id)
        if partner is not None and not partner.is_active and not claims.get("is_root_user"):
            raise AuthorizationError("Partner account is inactive", error_code=AuthErrorCode.PARTNER_INACTIVE)

        return AuthenticatedUser(
            id=user.id,
            identifier=user.identifier,
            role=UserRole(user.role),
            name=user.name,
            email=user.email,
            phone=user.phone,
            partner_id=user.partner_id,
            partner_domain=claims.get("partner_domain"),
            lab_id=user.lab_id,
            is_root_user=bool(claims.get("is_root_user")),
            tenant_prefix=claims.get("tenant_prefix") or ROOT_TENANT,
            session_id=claims.get("session"),
        )

    def get_me(self, db: Session, current: AuthenticatedUser) -> Dict[str, Any]:
        user = self.find_user_by_id(db, current.id, current.tenant_prefix)
        if user is None:
            raise NotFoundError("User not found", error_code=AuthErrorCode.USER_NOT_FOUND)
        partner = self.get_partner(db, user.partner_id)
        return self.serialize_user(user, partner, self.get_lab(db, user))

    def logout(self, current: Optional[AuthenticatedUser], ip_address: Optional[str] = None) -> None:
        """Best-effort activity log; tokens stay valid until they expire."""
        if current is None:
            return
        logger.info(
            "Logout activity",
            extra={"user_id": current.id, "session_id": current.session_id, "tenant_prefix": current.tenant_prefix},
        )

    def validate_request_domain(self, current: AuthenticatedUser, context: TenantContext) -> Dict[str, Any]:
        """Check an authenticated caller is on a hostname their token allows."""
        if current.is_root_user:
            if not context.is_main_domain:
                raise AuthorizationError(
                    f"Root users must access from main domain ({self.platform_domain})",
                    error_code=AuthErrorCode.ROOT_DOMAIN_REQUIRED,
                )
        elif current.partner_domain and context.hostname != current.partner_domain.lower():
            raise AuthorizationError(
                f"Access denied. Please use {current.partner_domain}",
                error_code=AuthErrorCode.DOMAIN_NOT_ALLOWED,
            )
        return {
            "domain": context.hostname,
            "is_main_domain": context.is_main_domain,
            "user_role": current.role.value,
            "is_root_user": current.is_root_user,
            "partner_domain": current.partner_domain,
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize_user(self, user, partner=None, lab=None) -> Dict[str, Any]:
        return {
            "id": user.id,
            "identifier": user.identifier,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "role": UserRole(user.role).value,
            "is_active": user.is_active,
            "email_verified": user.email_verified,
            "phone_verified": user.phone_verified,
            "last_login_at": user.last_login_at,
            "is_root_user": self.is_root_user(user, partner),
            "partner": {
                "id": partner.id,
                "identifier": partner.identifier,
                "company_name": partner.company_name,
                "subdomain": partner.subdomain,
                "custom_domain": partner.custom_domain,
                "partner_type": partner.partner_type,
                "is_active": partner.is_active,
            } if partner is not None else None,
            "lab": {
                "id": lab.id,
                "identifier": lab.identifier,
                "lab_name": lab.lab_name,
            } if lab is not None else None,
        }
