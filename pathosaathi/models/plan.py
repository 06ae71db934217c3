"""
Plan Catalog Models

PlanType is the platform's catalog entry (features, limits, base cost).
Plan is a partner's priced offering on top of a plan type; the partner's
margin is always selling_price - base_cost and is recomputed on save.
"""
from sqlalchemy import Column, String, Boolean, Float, Integer, Text, JSON, Enum as SQLEnum, event
from sqlalchemy.orm import declared_attr
from typing import List, Optional
import enum

from pathosaathi.core.exceptions import ValidationError
from pathosaathi.models.base import TenantEntity, reference_column


class BillingCycle(str, enum.Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class PlanTypeFields(TenantEntity):
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    features = Column(JSON, default=list, nullable=False)
    base_cost = Column(Float, nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    supported_billing_cycles = Column(JSON, default=lambda: [BillingCycle.MONTHLY.value], nullable=False)
    default_billing_cycle = Column(
        SQLEnum(BillingCycle, native_enum=False, length=20),
        default=BillingCycle.MONTHLY,
        nullable=False,
    )
    limits = Column(JSON, default=dict, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    version = Column(String(20), default="1.0.0", nullable=False)


class PlanFields(TenantEntity):
    plan_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    plan_type_category = Column(String(100), nullable=True)
    partner_name = Column(String(255), nullable=True)

    selling_price = Column(Float, nullable=False)
    base_cost = Column(Float, nullable=False)
    partner_margin = Column(Float, default=0, nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    billing_cycle = Column(
        SQLEnum(BillingCycle, native_enum=False, length=20),
        default=BillingCycle.MONTHLY,
        nullable=False,
    )
    # {"quarterly": percent, "yearly": percent}
    discounts = Column(JSON, default=dict, nullable=False)
    setup_fee = Column(Float, default=0, nullable=False)
    trial_period_days = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)

    @declared_attr
    def plan_type_id(cls):
        return reference_column(cls, "PlanType", nullable=False)

    @declared_attr
    def partner_id(cls):
        return reference_column(cls, "Partner", ondelete="CASCADE")

    def validate_pricing(self) -> List[str]:
        errors = []
        if self.selling_price is None or self.selling_price < 0:
            errors.append("Selling price must be a positive amount")
        elif self.base_cost is not None and self.selling_price < self.base_cost:
            errors.append("Selling price must be greater than or equal to base cost")
        for key in ("quarterly", "yearly"):
            value = (self.discounts or {}).get(key, 0)
            if not 0 <= value <= 100:
                errors.append(f"{key.capitalize()} discount must be between 0 and 100")
        return errors

    def apply_pricing_rules(self) -> None:
        errors = self.validate_pricing()
        if errors:
            raise ValidationError(errors[0], details=errors)
        self.partner_margin = self.selling_price - self.base_cost

    def calculate_total_price(self, billing_cycle: Optional[BillingCycle] = None) -> float:
        cycle = BillingCycle(billing_cycle or self.billing_cycle)
        discounts = self.discounts or {}
        if cycle == BillingCycle.QUARTERLY:
            return self.selling_price * 3 * (1 - discounts.get("quarterly", 0) / 100)
        if cycle == BillingCycle.YEARLY:
            return self.selling_price * 12 * (1 - discounts.get("yearly", 0) / 100)
        return self.selling_price


@event.listens_for(PlanFields, "before_insert", propagate=True)
@event.listens_for(PlanFields, "before_update", propagate=True)
def _plan_before_save(mapper, connection, target):
    target.apply_pricing_rules()
