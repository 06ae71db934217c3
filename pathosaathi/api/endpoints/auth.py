"""
Authentication Endpoints

Login, token refresh, profile and logout. Every flow is bound to the
hostname the request arrived on (see services/auth.py for the domain policy).
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from pathosaathi.api.deps import (
    get_client_ip,
    get_current_user,
    get_current_user_optional,
    get_db,
    get_state,
    get_tenant_context,
    login_rate_limit,
    refresh_rate_limit,
)
from pathosaathi.core.exceptions import ValidationError
from pathosaathi.core.responses import success_response
from pathosaathi.core.security import parse_expiration
from pathosaathi.middleware.tenant import TenantContext
from pathosaathi.schemas.auth import LoginRequest, RefreshRequest
from pathosaathi.services.auth import AuthenticatedUser
from pathosaathi.state import AppState
from pathosaathi.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

REFRESH_COOKIE = "refresh_token"


def refresh_cookie_domain(state: AppState, tenant: TenantContext) -> str:
    """Platform hosts share one cookie; partner custom domains get their own."""
    platform = state.settings.APP_DOMAIN.lower()
    if tenant.hostname == platform or tenant.hostname.endswith(f".{platform}"):
        return f".{platform}"
    return tenant.hostname


@router.post("/login")
async def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    _: None = Depends(login_rate_limit),
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    """
    Authenticate with email or phone and return a token pair.

    SECURITY: The refresh token is also set as an HTTP-only cookie in
    production so browsers never expose it to scripts.
    """
    result = state.auth.login(
        db,
        password=credentials.password,
        context=tenant,
        email=credentials.email,
        phone=credentials.phone,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    if state.settings.is_production:
        response.set_cookie(
            REFRESH_COOKIE,
            result["tokens"]["refresh_token"],
            max_age=parse_expiration(state.settings.JWT_REFRESH_EXPIRES_IN),
            httponly=True,
            secure=True,
            samesite="strict",
            domain=refresh_cookie_domain(state, tenant),
        )

    return success_response(result, "Login successful")


@router.post("/refresh")
async def refresh(
    request: Request,
    payload: Optional[RefreshRequest] = None,
    _: None = Depends(refresh_rate_limit),
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    """Issue a new token pair from a refresh token (body or cookie)."""
    token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise ValidationError("Refresh token is required")

    result = state.auth.refresh(db, token, tenant.hostname)
    return success_response(result, "Token refreshed successfully")


@router.get("/me")
async def me(
    current_user: AuthenticatedUser = Depends(get_current_user),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    return success_response(state.auth.get_me(db, current_user), "User profile retrieved successfully")


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    current_user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
):
    """
    Clear the refresh cookie and log the logout.

    NOTE: Tokens are stateless; an issued access token stays valid until it
    expires.
    """
    state.auth.logout(current_user, ip_address=get_client_ip(request))
    response.delete_cookie(REFRESH_COOKIE, domain=refresh_cookie_domain(state, tenant))
    return success_response(None, "Logged out successfully")


@router.get("/validate-domain")
async def validate_domain(
    current_user: AuthenticatedUser = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
):
    return success_response(
        state.auth.validate_request_domain(current_user, tenant),
        "Domain access validated",
    )


@router.get("/health")
async def auth_health():
    return success_response(
        {"timestamp": datetime.utcnow(), "version": "1.0.0"},
        "PathoSaathi Authentication Service is running",
    )
