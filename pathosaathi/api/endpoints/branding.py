"""
Branding Endpoints

Tenant-aware branding, resolved from the request's Host/Origin. Read
endpoints are public; partner branding management is restricted:

- view/update: the partner's own users (PARTNER role) or SUPERADMIN
- reset to default: SUPERADMIN only
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from pathosaathi.api.deps import (
    get_db,
    get_state,
    get_tenant_context,
    require_partner,
    require_superadmin,
)
from pathosaathi.core.exceptions import AuthorizationError, InternalError
from pathosaathi.core.permissions import can_manage_partner
from pathosaathi.core.responses import success_response
from pathosaathi.middleware.tenant import TenantContext
from pathosaathi.schemas.branding import BrandingPreviewRequest, BrandingUpdate, BrandingValidateRequest
from pathosaathi.services.auth import AuthenticatedUser
from pathosaathi.services.branding import build_preview, validate_branding
from pathosaathi.state import AppState
from pathosaathi.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/branding", tags=["branding"])

CSS_CACHE_CONTROL = "public, max-age=3600"


@router.get("/config")
async def get_tenant_branding(
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    resolved = state.branding.get_tenant_branding(db, tenant)
    if resolved is None:
        raise InternalError("Unable to load branding configuration")
    return success_response(
        state.branding.serialize_tenant_branding(resolved),
        "Branding configuration retrieved successfully",
    )


@router.get("/simple")
async def get_simple_branding(
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    return success_response(
        state.branding.get_simple_branding(db, tenant),
        "Simple branding retrieved successfully",
    )


@router.get("/css")
async def get_branding_css(
    tenant: TenantContext = Depends(get_tenant_context),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    """CSS custom properties for the tenant. Cached for an hour once resolved."""
    css, resolved = state.branding.get_css(db, tenant)
    headers = {"Cache-Control": CSS_CACHE_CONTROL} if resolved else None
    return Response(content=css, media_type="text/css", headers=headers)


@router.get("/fonts")
async def get_available_fonts(
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    fonts = state.branding.get_active_fonts(db)
    return success_response(
        [state.branding.serialize_font(font) for font in fonts],
        "Available fonts retrieved successfully",
    )


@router.get("/tenant-info")
async def get_tenant_info(tenant: TenantContext = Depends(get_tenant_context)):
    partner = tenant.partner
    info = tenant.to_info()
    info["partner"] = {
        "id": partner.id,
        "company_name": partner.company_name,
        "partner_type": partner.partner_type,
        "is_active": partner.is_active,
    } if partner is not None else None
    return success_response(info, "Tenant information retrieved successfully")


@router.post("/preview")
async def preview_branding(payload: BrandingPreviewRequest):
    return success_response(build_preview(**payload.as_kwargs()), "Branding preview generated successfully")


@router.post("/validate")
async def validate_branding_config(payload: BrandingValidateRequest):
    return success_response(validate_branding(**payload.sections()), "Branding validation completed")


@router.get("/partner/{partner_id}")
async def get_partner_branding(
    partner_id: str,
    current_user: AuthenticatedUser = Depends(require_partner),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    if not can_manage_partner(current_user, partner_id):
        raise AuthorizationError("Cannot view branding for this partner")
    branding = state.branding.get_partner_branding(db, partner_id)
    return success_response(state.branding.serialize_branding(branding), "Partner branding retrieved successfully")


@router.put("/partner/{partner_id}")
async def update_partner_branding(
    partner_id: str,
    payload: BrandingUpdate,
    current_user: AuthenticatedUser = Depends(require_partner),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    if not can_manage_partner(current_user, partner_id):
        raise AuthorizationError("Cannot update branding for this partner")

    branding = state.branding.update_partner_branding(db, partner_id, **payload.as_kwargs())
    logger.info(
        f"Partner branding updated by {current_user.id}",
        extra={"partner_id": partner_id, "user_id": current_user.id},
    )
    return success_response(state.branding.serialize_branding(branding), "Partner branding updated successfully")


@router.post("/partner/{partner_id}/reset")
async def reset_partner_branding(
    partner_id: str,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    branding = state.branding.reset_partner_branding_to_default(db, partner_id)
    return success_response(
        state.branding.serialize_branding(branding),
        "Partner branding reset to default successfully",
    )


@router.get("/domain/validate")
async def validate_domain(tenant: TenantContext = Depends(get_tenant_context)):
    partner = tenant.partner
    return success_response(
        {
            "hostname": tenant.hostname,
            "tenant": {
                "type": tenant.kind.value,
                "is_main_domain": tenant.is_main_domain,
                "subdomain": tenant.subdomain,
                "custom_domain": tenant.custom_domain,
                "partner_name": partner.company_name if partner is not None else None,
            },
        },
        "Domain validation completed",
    )


@router.get("/health")
async def branding_health(tenant: TenantContext = Depends(get_tenant_context)):
    return success_response(
        {
            "hostname": tenant.hostname,
            "timestamp": datetime.utcnow(),
            "version": "1.0.0",
            "multi_tenant": True,
            "tenant": {"type": tenant.kind.value, "resolved": True},
        },
        "PathoSaathi Branding Service is running",
    )
