"""
Tenant Model Router

Maps (tenant prefix, entity name) to a concrete SQLAlchemy class bound to
the physical table "{tenant_prefix}_{entity}", creating the table on first
use.

ARCHITECTURE:
- Schemas come from an explicit SchemaRegistry (models/__init__.py).
- GLOBAL entities always route to the root tenant.
- Each physical name is mapped at most once on the router's own declarative
  base; handles are cached and the cache can be dropped at any time
  without re-mapping.
- Foreign keys resolve through ReferenceResolver, so a tenant's User table
  points at PS_ROOT_Partner and at that tenant's own Lab table.

CONCURRENCY: creation is guarded by a re-entrant lock (references are
ensured recursively while the lock is held).

NOTE: Table DDL runs on its own connection. Callers that also write rows
should ensure tables before opening their write transaction (PostgreSQL
needs a lock on referenced tables to add foreign keys).
"""
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from threading import RLock
from typing import Any, Dict, List, Optional, Type
import logging

from pathosaathi.core.exceptions import ModelNotImplementedError
from pathosaathi.models.registry import EntitySchema, SchemaRegistry, tenant_table_name
from pathosaathi.models.user import UserRole, LAB_ROLES
from pathosaathi.services.tenant_config import ROOT_TENANT

logger = logging.getLogger(__name__)

COUNTER_ENTITY = "IdentifierCounter"

# Tables every new partner tenant starts with
PARTNER_TENANT_ENTITIES = ("User", "Lab", "LabSubscription")


class ReferenceResolver:
    """Resolves logical entity names to physical tables for one tenant."""

    def __init__(self, router: "ModelRouter", tenant_prefix: str):
        self._router = router
        self.tenant_prefix = tenant_prefix

    def table_name(self, entity_name: str) -> str:
        return self._router.table_name(self.tenant_prefix, entity_name)

    def foreign_key(self, entity_name: str) -> str:
        return f"{self.table_name(entity_name)}.id"

    def model(self, entity_name: str) -> Type:
        return self._router.get(self.tenant_prefix, entity_name)


class ModelRouter:
    def __init__(self, engine: Engine, registry: SchemaRegistry, root_tenant: str = ROOT_TENANT):
        self.engine = engine
        self.registry = registry
        self.root_tenant = root_tenant
        self.Base = declarative_base()

        self._handles: Dict[str, Type] = {}
        self._mapped: Dict[str, Type] = {}
        self._lock = RLock()
        self._hits = 0
        self._misses = 0

    def schema(self, entity_name: str) -> EntitySchema:
        schema = self.registry.get(entity_name)
        if schema is None or not schema.is_implemented:
            raise ModelNotImplementedError(entity_name)
        return schema

    def storage_tenant(self, tenant_prefix: Optional[str], entity_name: str) -> str:
        """Tenant whose tables hold `entity_name` for `tenant_prefix`."""
        if self.schema(entity_name).is_global:
            return self.root_tenant
        return tenant_prefix or self.root_tenant

    def table_name(self, tenant_prefix: Optional[str], entity_name: str) -> str:
        return tenant_table_name(self.storage_tenant(tenant_prefix, entity_name), entity_name)

    def get(self, tenant_prefix: Optional[str], entity_name: str) -> Type:
        """Get (creating if needed) the mapped class for an entity in a tenant."""
        name = self.table_name(tenant_prefix, entity_name)

        handle = self._handles.get(name)
        if handle is not None:
            self._hits += 1
            return handle

        with self._lock:
            handle = self._handles.get(name)
            if handle is None:
                self._misses += 1
                tenant = self.storage_tenant(tenant_prefix, entity_name)
                handle = self._ensure(tenant, self.schema(entity_name), name)
                self._handles[name] = handle
        return handle

    model_for = get

    def _ensure(self, tenant_prefix: str, schema: EntitySchema, name: str) -> Type:
        for reference in schema.references:
            self.get(tenant_prefix, reference)
        if schema.name != COUNTER_ENTITY:
            self.get(tenant_prefix, COUNTER_ENTITY)

        model = self._mapped.get(name)
        if model is None:
            model = type(
                name,
                (schema.fields, self.Base),
                {
                    "__tablename__": name,
                    "__entity__": schema.name,
                    "__tenant_prefix__": tenant_prefix,
                    "__refs__": ReferenceResolver(self, tenant_prefix),
                },
            )
            self._mapped[name] = model
            logger.info(f"Mapped model {name}", extra={"tenant_prefix": tenant_prefix})

        model.__table__.create(bind=self.engine, checkfirst=True)
        return model

    def resolve_reference(self, tenant_prefix: str, entity_name: str) -> str:
        """Physical table name a tenant's references to `entity_name` point at."""
        return self.table_name(tenant_prefix, entity_name)

    def create_partner_tenant(self, tenant_prefix: str) -> List[str]:
        """Create the starting tables for a new partner tenant."""
        created = []
        for entity_name in PARTNER_TENANT_ENTITIES:
            created.append(self.get(tenant_prefix, entity_name).__tablename__)
        logger.info(f"Partner tenant initialized: {tenant_prefix}", extra={"tenant_prefix": tenant_prefix})
        return created

    def get_all_models(self, tenant_prefix: str) -> Dict[str, Type]:
        return {
            schema.name: self.get(tenant_prefix, schema.name)
            for schema in self.registry.implemented()
        }

    def initialize_core_models(self) -> Dict[str, Type]:
        """Map and create every implemented entity in the root tenant."""
        models = self.get_all_models(self.root_tenant)
        logger.info(f"Core models initialized: {len(models)} tables in {self.root_tenant}")
        return models

    def get_tenant_prefix_for_user(self, role: Any, partner: Any = None) -> str:
        """
        Tenant whose User table holds a user with this role.

        Lab staff of a (non-root) partner live in the partner's tenant;
        everyone else lives in the root tenant.
        """
        if UserRole(role) in LAB_ROLES and partner is not None and not partner.is_root_tenant:
            return partner.tenant_prefix
        return self.root_tenant

    def clear_tenant_cache(self, tenant_prefix: str) -> int:
        with self._lock:
            names = [
                name for name, model in self._handles.items()
                if model.__tenant_prefix__ == tenant_prefix
            ]
            for name in names:
                del self._handles[name]
        logger.info(f"Cleared {len(names)} cached models for {tenant_prefix}")
        return len(names)

    def clear_all_cache(self) -> int:
        with self._lock:
            count = len(self._handles)
            self._handles.clear()
        logger.info(f"Cleared {count} cached models")
        return count

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "cached_models": len(self._handles),
            "mapped_models": len(self._mapped),
            "hits": self._hits,
            "misses": self._misses,
            "models": sorted(self._handles),
        }
