"""
Lab and LabSubscription Models

Minimal tenant-scoped records: a lab belongs to a partner, and holds
subscriptions to the partner's plans.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Float
from sqlalchemy.orm import declared_attr

from pathosaathi.models.base import TenantEntity, reference_column


class LabFields(TenantEntity):
    lab_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(15), nullable=True)
    address = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    @declared_attr
    def partner_id(cls):
        return reference_column(cls, "Partner", ondelete="SET NULL")


class LabSubscriptionFields(TenantEntity):
    status = Column(String(20), default="ACTIVE", nullable=False)
    amount = Column(Float, default=0, nullable=False)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    @declared_attr
    def lab_id(cls):
        return reference_column(cls, "Lab", nullable=False, ondelete="CASCADE")

    @declared_attr
    def plan_id(cls):
        return reference_column(cls, "Plan", ondelete="SET NULL")
