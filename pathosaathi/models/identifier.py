"""
Identifier Models

IdentifierCounter: one row per (model_name, reset_key) in every tenant,
incremented atomically by the identifier generator.

PartnerIdentifierConfiguration: GLOBAL record holding a tenant's identifier
formats, applied template, change history and usage stats.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import declared_attr
from datetime import datetime
from typing import Any, Dict
import uuid

from pathosaathi.models.base import TenantEntity, reference_column

CONFIGURATION_VERSION = "1.0.0"


class IdentifierCounterFields:
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    model_name = Column(String(100), nullable=False)
    # "2024-11-29", "2024-11", "2024" or "all-time"
    reset_key = Column(String(20), nullable=False)
    counter = Column(Integer, default=0, nullable=False)
    last_used = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @declared_attr
    def __table_args__(cls):
        # CRITICAL: the atomic upsert conflicts on exactly these columns
        return (
            UniqueConstraint("model_name", "reset_key", name=f"uq_{cls.__tablename__}_model_reset"),
        )

    def __repr__(self):
        return f"<IdentifierCounter {self.model_name}@{self.reset_key}={self.counter}>"


class PartnerIdentifierConfigurationFields(TenantEntity):
    tenant_prefix = Column(String(25), nullable=False, unique=True, index=True)
    partner_name = Column(String(255), nullable=False)
    global_prefix = Column(String(10), nullable=False, default="PS")

    # {"User": {"prefix": ..., "format": ..., ...}, ...}
    configurations = Column(JSON, default=dict, nullable=False)
    applied_template = Column(String(50), nullable=True)
    version = Column(String(20), default=CONFIGURATION_VERSION, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_modified_by = Column(String(255), nullable=True)
    change_history = Column(JSON, default=list, nullable=False)

    # Usage stats, updated with column increments
    total_identifiers_generated = Column(Integer, default=0, nullable=False)
    last_used = Column(DateTime, nullable=True)
    configuration_changes = Column(Integer, default=0, nullable=False)

    @declared_attr
    def partner_id(cls):
        return reference_column(cls, "Partner", ondelete="CASCADE")

    @property
    def models_configured(self) -> int:
        return len(self.configurations or {})

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "total_identifiers_generated": self.total_identifiers_generated or 0,
            "last_used": self.last_used,
            "models_configured": self.models_configured,
            "configuration_changes": self.configuration_changes or 0,
        }

    def record_change(self, changes: str, modified_by: str, now: datetime = None) -> None:
        """Append a history entry. JSON columns are reassigned so the change is flushed."""
        now = now or datetime.utcnow()
        self.change_history = list(self.change_history or []) + [
            {
                "version": self.version,
                "changes": changes,
                "modified_by": modified_by,
                "modified_at": now.isoformat(),
            }
        ]
        self.configuration_changes = (self.configuration_changes or 0) + 1
        self.last_modified_by = modified_by
