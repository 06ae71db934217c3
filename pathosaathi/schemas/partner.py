"""
Partner Schemas

Request/response models for partner onboarding.
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime

from pathosaathi.models.partner import PartnerType, PaymentStatus
from pathosaathi.schemas.auth import PHONE_PATTERN


class PartnerCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    owner_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(..., pattern=PHONE_PATTERN)
    partner_type: PartnerType

    subdomain: Optional[str] = Field(None, max_length=63)
    custom_domain: Optional[str] = Field(None, max_length=255)

    # Defaults to the fee for partner_type
    registration_fee: Optional[int] = None
    custom_identifier_prefix: Optional[str] = Field(None, max_length=10)
    custom_collection_prefix: Optional[str] = Field(None, max_length=15)
    is_root_tenant: bool = False

    gst_number: Optional[str] = Field(None, max_length=15)
    pan_number: Optional[str] = Field(None, max_length=10)
    business_type: Optional[str] = Field(None, max_length=100)

    class Config:
        json_schema_extra = {
            "example": {
                "company_name": "Apollo Labs",
                "owner_name": "Ravi Kumar",
                "email": "owner@apollo-labs.in",
                "phone": "9876543210",
                "partner_type": "WHITE_LABEL",
                "subdomain": "apollo",
            }
        }


class PaymentStatusUpdate(BaseModel):
    paid_status: PaymentStatus
    payment_transaction_id: Optional[str] = Field(None, max_length=255)


class PartnerResponse(BaseModel):
    id: str
    identifier: Optional[str]
    company_name: str
    owner_name: str
    email: str
    phone: str
    subdomain: Optional[str]
    custom_domain: Optional[str]
    partner_type: PartnerType
    registration_fee: int
    paid_status: PaymentStatus
    tenant_prefix: str
    is_root_tenant: bool
    is_active: bool
    referral_code: Optional[str]
    registration_date: Optional[datetime]
    expiry_date: Optional[datetime]
    branding_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
