"""
Base Entity Columns

Every entity mixin extends TenantEntity. The router maps each mixin onto a
concrete class per tenant, so columns here are copied into every physical
table ("PS_ROOT_User", "PS_APOLLO_A1B2_User", ...).

Foreign keys must be declared with declared_attr and resolved through
cls.__refs__ (a ReferenceResolver bound to the class's tenant), since the
target table name depends on which tenant the class is mapped for.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey
from datetime import datetime
import uuid


class TenantEntity:
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Human-readable business key, assigned by the identifier generator
    identifier = Column(String(64), unique=True, index=True, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<{type(self).__name__} {self.identifier or self.id}>"


def reference_column(cls, entity_name: str, nullable: bool = True, ondelete: str = None) -> Column:
    """Foreign key column pointing at `entity_name` in the class's tenant."""
    return Column(
        String(36),
        ForeignKey(cls.__refs__.foreign_key(entity_name), ondelete=ondelete),
        nullable=nullable,
        index=True,
    )
