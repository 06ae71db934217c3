"""
API Dependencies

Reusable FastAPI dependencies for state, sessions, tenant context,
authentication and authorization.

PATTERN: Everything process-scoped comes from app.state.container (an
AppState). Nothing here reaches for module-level globals, so tests can run
several apps side by side.
"""
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from pathosaathi.core.exceptions import ApiError, AuthenticationError, AuthErrorCode, AuthorizationError, RateLimitExceeded
from pathosaathi.core.permissions import require_role as check_role
from pathosaathi.middleware.tenant import TenantContext, TenantKind, extract_hostname
from pathosaathi.models.user import LAB_ROLES, UserRole
from pathosaathi.services.auth import AuthenticatedUser
from pathosaathi.state import AppState
from pathosaathi.utils.logging import log_security_event
import logging

logger = logging.getLogger(__name__)

# auto_error=False: a missing header is reported as our own 401 envelope
security = HTTPBearer(auto_error=False)


def get_state(request: Request) -> AppState:
    return request.app.state.container


def get_db(state: AppState = Depends(get_state)) -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a session per request and always closes it. Writes are committed
    explicitly by the services.
    """
    db = state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_tenant_context(request: Request) -> TenantContext:
    """
    Tenant resolved by TenantMiddleware.

    Paths the middleware skips get a ROOT context built from the hostname.
    """
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        hostname = extract_hostname(request.headers)
        state = get_state(request)
        tenant = TenantContext(
            kind=TenantKind.ROOT,
            hostname=hostname,
            is_main_domain=state.resolver.is_main_domain(hostname),
        )
    return tenant


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    """
    Get current authenticated user.

    This dependency:
    1. Requires a Bearer token (401)
    2. Verifies signature, issuer and expiry (401)
    3. Checks the token's audience against the request hostname (403)
    4. Loads the user and checks user and partner are active
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required", error_code=AuthErrorCode.TOKEN_INVALID)
    return state.auth.authenticate(db, credentials.credentials, tenant.hostname)


def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
) -> Optional[AuthenticatedUser]:
    """Current user if a valid token was sent, None otherwise."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return state.auth.authenticate(db, credentials.credentials, tenant.hostname)
    except ApiError as e:
        logger.debug(f"Optional auth failed: {e.message}")
        return None


def require_role(min_role: UserRole):
    """Dependency factory: the caller's role must be at least `min_role`."""

    def dependency(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        check_role(current_user, min_role)
        return current_user

    return dependency


require_superadmin = require_role(UserRole.SUPERADMIN)
require_lab_owner = require_role(UserRole.LAB_OWNER)
require_partner = require_role(UserRole.PARTNER)


def require_root_user(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if not current_user.is_root_user:
        raise AuthorizationError(
            "Root access required",
            error_code=AuthErrorCode.ROOT_DOMAIN_REQUIRED,
        )
    return current_user


def require_lab_user(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if current_user.role not in LAB_ROLES or not current_user.lab_id:
        raise AuthorizationError("Lab access required", error_code="INSUFFICIENT_ROLE")
    return current_user


def _attempt_limit(scope: str, limit_setting: str):
    def dependency(request: Request, state: AppState = Depends(get_state)) -> None:
        key = f"{scope}:{get_client_ip(request) or 'unknown'}"
        allowed, retry_after = state.login_limiter.hit(key, getattr(state.settings, limit_setting))
        if not allowed:
            log_security_event("rate_limit_exceeded", {"scope": scope, "key": key}, logger)
            raise RateLimitExceeded(
                retry_after=retry_after,
                message=f"Too many {scope} attempts. Please try again later.",
            )

    return dependency


login_rate_limit = _attempt_limit("login", "LOGIN_RATE_LIMIT")
refresh_rate_limit = _attempt_limit("refresh", "REFRESH_RATE_LIMIT")
