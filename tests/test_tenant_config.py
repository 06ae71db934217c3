"""
Tests for tenant prefix derivation and the in-process prefix registry.
"""
from pathosaathi.models.registry import tenant_table_name
from pathosaathi.services.tenant_config import (
    DEFAULT_IDENTIFIER_PREFIX,
    TenantConfigManager,
    derive_identifier_prefix,
    generate_partner_tenant_prefix,
    initialize_partner_tenant,
    is_valid_tenant_prefix,
)


def test_generated_prefix_uses_name_and_code():
    assert generate_partner_tenant_prefix("Apollo Labs", "1a2b3c4d") == "PS_APOLLOLA_1A2B"


def test_custom_collection_prefix_replaces_platform_namespace():
    assert generate_partner_tenant_prefix("Apollo Labs", "1a2b", custom_prefix="apollo-x") == "APOLLOX_1A2B"


def test_name_is_stripped_to_alphanumerics():
    assert generate_partner_tenant_prefix("Dr. Lal's Path & Labs", "ffff0000") == "PS_DRLALSPA_FFFF"


def test_is_valid_tenant_prefix():
    assert is_valid_tenant_prefix("PS_ROOT")
    assert is_valid_tenant_prefix("PS_APOLLOLA_1A2B")
    assert not is_valid_tenant_prefix("")
    assert not is_valid_tenant_prefix("ps_root")
    assert not is_valid_tenant_prefix("AB")
    assert not is_valid_tenant_prefix("A" * 26)
    assert not is_valid_tenant_prefix("PS-ROOT")


def test_identifier_prefix_derivation():
    assert derive_identifier_prefix("Apollo Labs") == "APOLLOLA"
    assert derive_identifier_prefix("Apollo Labs", custom_prefix="apl") == "APL"
    assert derive_identifier_prefix("!!!") == DEFAULT_IDENTIFIER_PREFIX


def test_table_name():
    assert tenant_table_name("PS_ROOT", "User") == "PS_ROOT_User"


def test_manager_defaults_to_platform_prefix():
    manager = TenantConfigManager()
    assert manager.get("PS_UNKNOWN_0000") is None
    assert manager.get_identifier_prefix("PS_UNKNOWN_0000") == DEFAULT_IDENTIFIER_PREFIX


def test_initialize_partner_tenant_registers_config():
    manager = TenantConfigManager()

    prefix, config = initialize_partner_tenant(
        manager,
        "Apollo Labs",
        "1a2b3c4d",
        custom_identifier_prefix="apollo",
        custom_domain="lab.apollo.com",
    )

    assert prefix == "PS_APOLLOLA_1A2B"
    assert config.collection_prefix == prefix
    assert config.identifier_prefix == "APOLLO"
    assert config.custom_domain == "lab.apollo.com"
    assert manager.get(prefix) == config
    assert manager.get_identifier_prefix(prefix) == "APOLLO"

    manager.remove(prefix)
    assert manager.all() == {}
