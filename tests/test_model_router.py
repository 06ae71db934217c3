"""
Tests for the schema registry and the tenant model router.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import inspect

from pathosaathi.core.exceptions import ModelNotImplementedError
from pathosaathi.models import ENTITY_SCHEMAS, build_registry
from pathosaathi.models.registry import EntityScope, EntitySchema, SchemaRegistry
from pathosaathi.models.user import UserFields, UserRole
from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.tenant_config import ROOT_TENANT

TENANT = "PS_APOLLOLA_1A2B"


def test_registry_ignores_identical_reregistration():
    registry = SchemaRegistry()
    schema = EntitySchema("User", UserFields)
    assert registry.register(schema) is schema
    assert registry.register(EntitySchema("User", UserFields)) is schema


def test_registry_rejects_conflicting_schema():
    registry = SchemaRegistry()
    registry.register(EntitySchema("User", UserFields))
    with pytest.raises(ValueError):
        registry.register(EntitySchema("User", UserFields, EntityScope.GLOBAL))


def test_registry_lists_declared_entities():
    registry = build_registry()
    assert registry.names() == [schema.name for schema in ENTITY_SCHEMAS]
    assert "Patient" in registry
    assert "Patient" not in [schema.name for schema in registry.implemented()]
    assert set(registry.global_names()) == {"Partner", "Font", "Theme", "Branding", "PartnerIdentifierConfiguration", "Test"}


def test_tenant_entity_table_name(state):
    User = state.models.get(TENANT, "User")
    assert User.__tablename__ == f"{TENANT}_User"
    assert User.__tenant_prefix__ == TENANT


def test_global_entities_route_to_root(state):
    Partner = state.models.get(TENANT, "Partner")
    assert Partner.__tablename__ == "PS_ROOT_Partner"
    assert Partner is state.models.get(ROOT_TENANT, "Partner")


def test_missing_tenant_routes_to_root(state):
    assert state.models.get(None, "User").__tablename__ == "PS_ROOT_User"


def test_same_class_is_returned(state):
    assert state.models.get(TENANT, "Lab") is state.models.model_for(TENANT, "Lab")


def test_references_point_at_the_right_tables(state):
    User = state.models.get(TENANT, "User")
    targets = {fk.parent.name: fk.target_fullname for fk in User.__table__.foreign_keys}
    assert targets == {
        "lab_id": f"{TENANT}_Lab.id",
        "partner_id": "PS_ROOT_Partner.id",
    }
    assert state.models.resolve_reference(TENANT, "Lab") == f"{TENANT}_Lab"
    assert state.models.resolve_reference(TENANT, "Branding") == "PS_ROOT_Branding"


def test_unimplemented_entity_raises(state):
    with pytest.raises(ModelNotImplementedError) as exc:
        state.models.get(TENANT, "Patient")
    assert exc.value.status_code == 500
    assert exc.value.message == "Model Patient not implemented yet"


def test_unknown_entity_raises(state):
    with pytest.raises(ModelNotImplementedError):
        state.models.get(TENANT, "Invoice")


def test_create_partner_tenant_creates_tables(state, engine):
    created = state.models.create_partner_tenant(TENANT)

    assert created == [f"{TENANT}_User", f"{TENANT}_Lab", f"{TENANT}_LabSubscription"]
    tables = set(inspect(engine).get_table_names())
    assert set(created) <= tables
    assert f"{TENANT}_IdentifierCounter" in tables
    assert f"{TENANT}_Plan" in tables


def test_initialize_core_models_creates_root_tables(state, engine):
    tables = set(inspect(engine).get_table_names())
    for schema in state.registry.implemented():
        assert f"{ROOT_TENANT}_{schema.name}" in tables


def test_clearing_cache_keeps_mapped_classes(state):
    User = state.models.get(TENANT, "User")
    stats = state.models.get_cache_stats()
    assert f"{TENANT}_User" in stats["models"]

    cleared = state.models.clear_tenant_cache(TENANT)
    assert cleared > 0
    assert f"{TENANT}_User" not in state.models.get_cache_stats()["models"]

    assert state.models.get(TENANT, "User") is User


def test_clear_all_cache_counts_handles(state):
    cached = state.models.get_cache_stats()["cached_models"]
    assert state.models.clear_all_cache() == cached
    stats = state.models.get_cache_stats()
    assert stats["cached_models"] == 0
    assert stats["mapped_models"] >= cached


def test_cache_hits_and_misses(engine):
    router = ModelRouter(engine, build_registry())
    router.get(ROOT_TENANT, "Font")
    router.get(ROOT_TENANT, "Font")
    stats = router.get_cache_stats()
    assert stats["misses"] >= 1
    assert stats["hits"] >= 1


def test_concurrent_first_use_maps_once(engine):
    router = ModelRouter(engine, build_registry())
    with ThreadPoolExecutor(max_workers=8) as pool:
        classes = list(pool.map(lambda _: router.get(TENANT, "Lab"), range(16)))
    assert all(cls is classes[0] for cls in classes)


def test_user_tenant_by_role(state, make_partner):
    partner = make_partner()
    root_partner = make_partner(company_name="PathoSaathi", subdomain=None, is_root_tenant=True)

    assert state.models.get_tenant_prefix_for_user(UserRole.TECH, partner) == partner.tenant_prefix
    assert state.models.get_tenant_prefix_for_user(UserRole.LAB_OWNER, partner) == partner.tenant_prefix
    assert state.models.get_tenant_prefix_for_user(UserRole.PARTNER, partner) == ROOT_TENANT
    assert state.models.get_tenant_prefix_for_user(UserRole.SUPERADMIN) == ROOT_TENANT
    assert state.models.get_tenant_prefix_for_user(UserRole.TECH, root_partner) == ROOT_TENANT
    assert state.models.get_tenant_prefix_for_user(UserRole.TECH) == ROOT_TENANT
