"""
Entity Schema Registry

Explicit map from logical entity name ("User", "Partner", ...) to the
declarative mixin that defines its columns, its storage scope and the
entities it references. The model router reads this registry to map a
physical table per tenant; nothing is registered implicitly by importing
a module.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type


class EntityScope(str, Enum):
    """
    GLOBAL entities always live in the root tenant's tables.
    TENANT entities get one physical table per tenant prefix.
    """
    GLOBAL = "GLOBAL"
    TENANT = "TENANT"


@dataclass(frozen=True)
class EntitySchema:
    name: str
    fields: Optional[Type] = None  # None = declared but not implemented yet
    scope: EntityScope = EntityScope.TENANT
    references: Tuple[str, ...] = ()

    @property
    def is_implemented(self) -> bool:
        return self.fields is not None

    @property
    def is_global(self) -> bool:
        return self.scope == EntityScope.GLOBAL


class SchemaRegistry:
    """Registered entity schemas, keyed by logical name."""

    def __init__(self):
        self._schemas: Dict[str, EntitySchema] = {}

    def register(self, schema: EntitySchema) -> EntitySchema:
        """
        Register a schema.

        Registering the same schema twice is a no-op; registering a different
        schema under an existing name is a programming error.
        """
        existing = self._schemas.get(schema.name)
        if existing is not None:
            if existing != schema:
                raise ValueError(f"Entity {schema.name} is already registered with a different schema")
            return existing
        self._schemas[schema.name] = schema
        return schema

    def get(self, name: str) -> Optional[EntitySchema]:
        return self._schemas.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def names(self) -> List[str]:
        return list(self._schemas)

    def implemented(self) -> List[EntitySchema]:
        return [schema for schema in self._schemas.values() if schema.is_implemented]

    def global_names(self) -> List[str]:
        return [schema.name for schema in self._schemas.values() if schema.is_global]


def tenant_table_name(tenant_prefix: str, entity_name: str) -> str:
    """Physical table name for an entity inside a tenant namespace."""
    return f"{tenant_prefix}_{entity_name}"
