"""
Platform Administration Endpoints

SUPERADMIN only. Cache inspection and identifier configuration per tenant.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pathosaathi.api.deps import get_db, get_state, require_superadmin
from pathosaathi.core.exceptions import NotFoundError
from pathosaathi.core.responses import success_response
from pathosaathi.schemas.identifier import IdentifierConfigurationResponse, ModelConfigUpdate, TemplateApply
from pathosaathi.services.auth import AuthenticatedUser
from pathosaathi.services.identifier_formats import IDENTIFIER_TEMPLATES
from pathosaathi.services.tenant_config import ROOT_TENANT
from pathosaathi.state import AppState
from pathosaathi.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _configuration_or_404(state: AppState, db: Session, tenant_prefix: str):
    record = state.identifier_configs.get_full_configuration(db, tenant_prefix)
    if record is None:
        raise NotFoundError(f"No identifier configuration for tenant {tenant_prefix}")
    return record


def _known_tenant_or_404(state: AppState, db: Session, tenant_prefix: str) -> None:
    """Counter tables are created on first use, so unknown tenants stop here."""
    if tenant_prefix != ROOT_TENANT:
        _configuration_or_404(state, db, tenant_prefix)


def _known_model_or_404(state: AppState, model_name: str) -> None:
    if model_name not in state.registry:
        raise NotFoundError(f"Unknown model: {model_name}")


@router.get("/cache/stats")
async def cache_stats(
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
):
    return success_response(state.cache_stats(), "Cache statistics retrieved successfully")


@router.post("/cache/clear")
async def clear_cache(
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
):
    cleared = state.clear_caches()
    logger.info(f"Caches cleared by {current_user.id}", extra={"user_id": current_user.id})
    return success_response(cleared, "Caches cleared successfully")


@router.get("/identifiers/templates")
async def list_templates(current_user: AuthenticatedUser = Depends(require_superadmin)):
    return success_response(IDENTIFIER_TEMPLATES, "Identifier templates retrieved successfully")


@router.get("/identifiers/{tenant_prefix}")
async def get_identifier_configuration(
    tenant_prefix: str,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    record = _configuration_or_404(state, db, tenant_prefix)
    return success_response(
        IdentifierConfigurationResponse.model_validate(record),
        "Identifier configuration retrieved successfully",
    )


@router.put("/identifiers/{tenant_prefix}/models/{model_name}")
async def update_model_configuration(
    tenant_prefix: str,
    model_name: str,
    payload: ModelConfigUpdate,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    _known_model_or_404(state, model_name)
    config = state.identifier_configs.set_model_config(
        db,
        tenant_prefix,
        model_name,
        payload.changes(),
        modified_by=current_user.id,
    )
    return success_response(config.to_dict(), f"{model_name} identifier configuration updated successfully")


@router.post("/identifiers/{tenant_prefix}/template")
async def apply_template(
    tenant_prefix: str,
    payload: TemplateApply,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    record = state.identifier_configs.apply_template(
        db,
        tenant_prefix,
        payload.template_name,
        modified_by=current_user.id,
    )
    return success_response(
        IdentifierConfigurationResponse.model_validate(record),
        f"Template {payload.template_name} applied successfully",
    )


@router.get("/identifiers/{tenant_prefix}/validate")
async def validate_identifier_configuration(
    tenant_prefix: str,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    record = _configuration_or_404(state, db, tenant_prefix)
    valid, errors = state.identifier_configs.validate_configuration(record)
    return success_response({"valid": valid, "errors": errors}, "Identifier configuration validated")


@router.get("/identifiers/{tenant_prefix}/usage")
async def identifier_usage(
    tenant_prefix: str,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    _known_tenant_or_404(state, db, tenant_prefix)
    record = state.identifier_configs.get_full_configuration(db, tenant_prefix)
    return success_response(
        {
            "tenant_prefix": tenant_prefix,
            "counters": state.identifiers.get_usage_stats(db, tenant_prefix),
            "stats": record.stats if record is not None else None,
        },
        "Identifier usage retrieved successfully",
    )


@router.post("/identifiers/{tenant_prefix}/models/{model_name}/reset")
async def reset_model_counter(
    tenant_prefix: str,
    model_name: str,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    """
    Restart the current period's counter for a model at zero.

    WARNING: identifiers already issued in the period are issued again.
    """
    _known_tenant_or_404(state, db, tenant_prefix)
    _known_model_or_404(state, model_name)
    state.identifiers.reset_counter(db, tenant_prefix, model_name)
    db.commit()
    logger.warning(
        f"{model_name} counter reset by {current_user.id}",
        extra={"tenant_prefix": tenant_prefix, "user_id": current_user.id},
    )
    return success_response(
        {"model_name": model_name, "counter": state.identifiers.get_current_counter(db, tenant_prefix, model_name)},
        "Counter reset successfully",
    )


@router.post("/identifiers/{tenant_prefix}/cleanup")
async def cleanup_counters(
    tenant_prefix: str,
    days_old: int = Query(365, ge=1),
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    _known_tenant_or_404(state, db, tenant_prefix)
    deleted = state.identifiers.cleanup_old_counters(db, tenant_prefix, days_old=days_old)
    db.commit()
    return success_response({"deleted": deleted}, "Old counters cleaned up successfully")
