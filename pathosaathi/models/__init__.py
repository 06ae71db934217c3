"""
Database Models

Entity columns are defined as declarative mixins and mapped per tenant by
the model router. build_registry() lists every entity the platform knows,
including the ones whose schemas do not exist yet (Patient, Test,
TestOrder); asking the router for those raises ModelNotImplementedError.
"""
from pathosaathi.models.registry import EntityScope, EntitySchema, SchemaRegistry, tenant_table_name
from pathosaathi.models.partner import PartnerFields, PartnerType, PaymentStatus, PARTNER_FEES
from pathosaathi.models.user import UserFields, UserRole, ROLE_HIERARCHY, LAB_ROLES, has_role_permission
from pathosaathi.models.lab import LabFields, LabSubscriptionFields
from pathosaathi.models.plan import PlanTypeFields, PlanFields, BillingCycle
from pathosaathi.models.branding import BrandingFields, ThemeFields, FontFields
from pathosaathi.models.identifier import IdentifierCounterFields, PartnerIdentifierConfigurationFields

GLOBAL = EntityScope.GLOBAL
TENANT = EntityScope.TENANT

ENTITY_SCHEMAS = (
    EntitySchema("Partner", PartnerFields, GLOBAL, ("Branding",)),
    EntitySchema("Font", FontFields, GLOBAL),
    EntitySchema("Theme", ThemeFields, GLOBAL, ("Font",)),
    EntitySchema("Branding", BrandingFields, GLOBAL, ("Theme",)),
    EntitySchema("PartnerIdentifierConfiguration", PartnerIdentifierConfigurationFields, GLOBAL, ("Partner",)),
    EntitySchema("IdentifierCounter", IdentifierCounterFields, TENANT),
    EntitySchema("Lab", LabFields, TENANT, ("Partner",)),
    EntitySchema("User", UserFields, TENANT, ("Lab", "Partner")),
    EntitySchema("PlanType", PlanTypeFields, TENANT),
    EntitySchema("Plan", PlanFields, TENANT, ("PlanType", "Partner")),
    EntitySchema("LabSubscription", LabSubscriptionFields, TENANT, ("Lab", "Plan")),
    # Declared, schemas pending
    EntitySchema("Patient", None, TENANT),
    EntitySchema("Test", None, GLOBAL),
    EntitySchema("TestOrder", None, TENANT),
)


def build_registry() -> SchemaRegistry:
    registry = SchemaRegistry()
    for schema in ENTITY_SCHEMAS:
        registry.register(schema)
    return registry


__all__ = [
    "EntityScope",
    "EntitySchema",
    "SchemaRegistry",
    "tenant_table_name",
    "build_registry",
    "PartnerType",
    "PaymentStatus",
    "PARTNER_FEES",
    "UserRole",
    "ROLE_HIERARCHY",
    "LAB_ROLES",
    "has_role_permission",
    "BillingCycle",
]
