"""
Partner Model

Partners are the platform's tenants. A partner row is GLOBAL (stored in
PS_ROOT_Partner); its own data lives in tables under `tenant_prefix`.

Domains: a partner is reachable from `{subdomain}.{APP_DOMAIN}` and/or its
`custom_domain`. The platform itself may be represented by a partner with
is_root_tenant=True; such partners default to the "app" subdomain.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, Enum as SQLEnum, event
from sqlalchemy.orm import declared_attr
from datetime import datetime, timedelta
from typing import List, Optional
import enum
import math
import re
import secrets
import string

from pathosaathi.core.exceptions import ValidationError
from pathosaathi.models.base import TenantEntity, reference_column


class PartnerType(str, enum.Enum):
    COMMISSION = "COMMISSION"
    WHITE_LABEL = "WHITE_LABEL"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


# One-time registration fee (INR) per partner type
PARTNER_FEES = {
    PartnerType.COMMISSION: 999,
    PartnerType.WHITE_LABEL: 3999,
}

COMMISSION_RATES = {
    PartnerType.WHITE_LABEL: 0.25,
    PartnerType.COMMISSION: 0.15,
}

MINIMUM_WITHDRAWAL = 100
SUBSCRIPTION_DAYS = 365
ROOT_SUBDOMAIN = "app"


class PartnerFields(TenantEntity):
    company_name = Column(String(255), nullable=False)
    owner_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(15), nullable=False, unique=True, index=True)

    subdomain = Column(String(63), nullable=True, unique=True, index=True)
    custom_domain = Column(String(255), nullable=True, unique=True, index=True)

    partner_type = Column(SQLEnum(PartnerType, native_enum=False, length=20), nullable=False)
    registration_fee = Column(Integer, nullable=False)
    paid_status = Column(
        SQLEnum(PaymentStatus, native_enum=False, length=20),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    payment_transaction_id = Column(String(255), nullable=True)

    custom_identifier_prefix = Column(String(10), nullable=True)
    custom_collection_prefix = Column(String(15), nullable=True)
    tenant_prefix = Column(String(25), nullable=False, unique=True, index=True)

    # Platform's own partner record. Root partners' users are root users.
    is_root_tenant = Column(Boolean, default=False, nullable=False)

    registration_date = Column(DateTime, nullable=True)
    expiry_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=False, nullable=False, index=True)

    referral_code = Column(String(16), nullable=True, unique=True)
    earnings_balance = Column(Float, default=0, nullable=False)
    total_earnings = Column(Float, default=0, nullable=False)
    total_withdrawn = Column(Float, default=0, nullable=False)

    gst_number = Column(String(15), nullable=True)
    pan_number = Column(String(10), nullable=True)
    business_type = Column(String(100), nullable=True)

    onboarding_completed = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    @declared_attr
    def branding_id(cls):
        return reference_column(cls, "Branding", ondelete="SET NULL")

    def generate_referral_code(self) -> str:
        """Three letters of the company name plus four random characters."""
        letters = re.sub(r"[^A-Za-z]", "", self.company_name or "")[:3].upper()
        alphabet = string.ascii_uppercase + string.digits
        suffix = "".join(secrets.choice(alphabet) for _ in range(4))
        return f"{letters}{suffix}"

    def calculate_commission(self, amount: float) -> int:
        rate = COMMISSION_RATES.get(self.partner_type, COMMISSION_RATES[PartnerType.COMMISSION])
        return math.floor(amount * rate)

    def can_withdraw(self) -> bool:
        return (self.earnings_balance or 0) >= MINIMUM_WITHDRAWAL

    def get_tenant_domain(self) -> Optional[str]:
        """Custom domain if configured, else the bare subdomain label."""
        return self.custom_domain or self.subdomain

    def login_hostnames(self, platform_domain: str) -> List[str]:
        """Hostnames this partner's users may log in from."""
        hostnames = []
        if self.custom_domain:
            hostnames.append(self.custom_domain.lower())
        if self.subdomain and not self.is_root_tenant:
            hostnames.append(f"{self.subdomain}.{platform_domain}".lower())
        return hostnames

    def primary_domain(self, platform_domain: str) -> Optional[str]:
        hostnames = self.login_hostnames(platform_domain)
        return hostnames[0] if hostnames else None

    def is_accessible_from_domain(self, hostname: str, platform_domain: str) -> bool:
        return (hostname or "").lower() in self.login_hostnames(platform_domain)

    def expected_registration_fee(self) -> int:
        return PARTNER_FEES[PartnerType(self.partner_type)]

    def apply_lifecycle_rules(self, now: Optional[datetime] = None) -> None:
        """
        Rules enforced on every save.

        The first time the partner is PAID, the registration date is stamped,
        the yearly expiry set and the account activated.
        """
        if self.registration_fee != self.expected_registration_fee():
            raise ValidationError(
                f"Registration fee for {PartnerType(self.partner_type).value} partners "
                f"must be {self.expected_registration_fee()}"
            )

        if not self.referral_code:
            self.referral_code = self.generate_referral_code()

        if self.is_root_tenant and not self.subdomain:
            self.subdomain = ROOT_SUBDOMAIN

        if self.paid_status == PaymentStatus.PAID and self.registration_date is None:
            now = now or datetime.utcnow()
            self.registration_date = now
            self.expiry_date = now + timedelta(days=SUBSCRIPTION_DAYS)
            self.is_active = True


@event.listens_for(PartnerFields, "before_insert", propagate=True)
@event.listens_for(PartnerFields, "before_update", propagate=True)
def _partner_before_save(mapper, connection, target):
    target.apply_lifecycle_rules()
