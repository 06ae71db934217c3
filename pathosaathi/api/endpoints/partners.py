"""
Partner Onboarding Endpoints

RBAC:
- Create partner / update payment status: SUPERADMIN only
- List partners: root users
- Get partner: SUPERADMIN or the partner's own users
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pathosaathi.api.deps import get_current_user, get_db, get_state, require_root_user, require_superadmin
from pathosaathi.core.exceptions import AuthorizationError
from pathosaathi.core.permissions import can_manage_partner
from pathosaathi.core.responses import success_response
from pathosaathi.schemas.partner import PartnerCreate, PartnerResponse, PaymentStatusUpdate
from pathosaathi.services.auth import AuthenticatedUser
from pathosaathi.state import AppState
from pathosaathi.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/partners", tags=["partners"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_partner(
    partner_data: PartnerCreate,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    """
    Onboard a partner: tenant prefix, tenant tables, identifier configuration.

    The partner is inactive until its registration payment is marked PAID.
    """
    partner = state.partners.create_partner(db, partner_data, created_by=current_user.id)
    return success_response(PartnerResponse.model_validate(partner), "Partner created successfully")


@router.get("")
async def list_partners(
    page: int = Query(1, ge=1),
    page_size: int = Query(None, ge=1, le=100),
    current_user: AuthenticatedUser = Depends(require_root_user),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    page_size = page_size or state.settings.DEFAULT_PAGE_SIZE
    Partner = state.partners.model
    query = db.query(Partner).order_by(Partner.created_at.desc())
    total = query.count()
    partners = query.offset((page - 1) * page_size).limit(page_size).all()
    return success_response(
        {
            "partners": [PartnerResponse.model_validate(p) for p in partners],
            "total": total,
            "page": page,
            "page_size": page_size,
        },
        "Partners retrieved successfully",
    )


@router.get("/{partner_id}")
async def get_partner(
    partner_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    if not can_manage_partner(current_user, partner_id):
        raise AuthorizationError("Cannot view this partner")
    partner = state.partners.get_partner(db, partner_id)
    return success_response(PartnerResponse.model_validate(partner), "Partner retrieved successfully")


@router.patch("/{partner_id}/payment-status")
async def update_payment_status(
    partner_id: str,
    payment: PaymentStatusUpdate,
    current_user: AuthenticatedUser = Depends(require_superadmin),
    state: AppState = Depends(get_state),
    db: Session = Depends(get_db),
):
    partner = state.partners.update_payment_status(
        db,
        partner_id,
        payment.paid_status,
        payment.payment_transaction_id,
    )
    logger.info(f"Payment status updated by {current_user.id}", extra={"partner_id": partner_id})
    return success_response(PartnerResponse.model_validate(partner), "Payment status updated successfully")
