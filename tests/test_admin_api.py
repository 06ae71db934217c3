"""
Tests for platform administration endpoints: caches and per-tenant
identifier configuration.
"""
import pytest

from conftest import bearer
from pathosaathi.models.user import UserRole

ADMIN = "/api/v1/admin"


@pytest.fixture
def headers(make_user, token_for):
    return bearer(token_for(make_user(role=UserRole.SUPERADMIN)))


@pytest.fixture
def tenant(make_partner, make_lab):
    partner = make_partner(subdomain="apollo")
    make_lab(partner)
    return partner.tenant_prefix


def test_cache_stats_and_clear(client, headers):
    stats = client.get(f"{ADMIN}/cache/stats", headers=headers).json()["data"]
    assert stats["models"]["cached_models"] > 0
    assert "PS_ROOT_User" in stats["models"]["models"]

    cleared = client.post(f"{ADMIN}/cache/clear", headers=headers)

    assert cleared.status_code == 200
    assert cleared.json()["data"]["models"] >= stats["models"]["cached_models"]


def test_templates(client, headers):
    data = client.get(f"{ADMIN}/identifiers/templates", headers=headers).json()["data"]
    assert {"MEDICAL_STANDARD", "APOLLO_STYLE", "SIMPLE_NUMERIC"} <= set(data)


def test_get_configuration(client, headers, tenant):
    response = client.get(f"{ADMIN}/identifiers/{tenant}", headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["tenant_prefix"] == tenant
    assert data["partner_name"] == "Apollo Labs"
    assert data["configuration_changes"] == 1


def test_unknown_tenant(client, headers):
    for path in ("", "/usage", "/validate"):
        response = client.get(f"{ADMIN}/identifiers/PS_NOBODY_0000{path}", headers=headers)
        assert response.status_code == 404


def test_update_model_configuration(client, headers, tenant):
    response = client.put(
        f"{ADMIN}/identifiers/{tenant}/models/User",
        json={"counter_length": 6, "reset_frequency": "MONTHLY"},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["counter_length"] == 6
    assert response.json()["data"]["reset_frequency"] == "MONTHLY"

    data = client.get(f"{ADMIN}/identifiers/{tenant}", headers=headers).json()["data"]
    assert data["configurations"]["User"]["counter_length"] == 6
    assert data["change_history"][-1]["changes"] == "Updated User configuration"
    assert data["configuration_changes"] == 2


def test_invalid_model_configuration(client, headers, tenant):
    invalid = client.put(f"{ADMIN}/identifiers/{tenant}/models/User", json={"counter_length": 20}, headers=headers)
    unknown = client.put(f"{ADMIN}/identifiers/{tenant}/models/Spaceship", json={"counter_length": 5}, headers=headers)

    assert invalid.status_code == 400
    assert invalid.json()["message"] == "Invalid User identifier configuration"
    assert "Counter length must be between 1 and 10" in invalid.json()["error"]["details"]
    assert unknown.status_code == 404


def test_apply_template(client, headers, tenant):
    response = client.post(f"{ADMIN}/identifiers/{tenant}/template", json={"template_name": "APOLLO_STYLE"}, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["applied_template"] == "APOLLO_STYLE"
    assert data["configurations"]["User"]["date_format"] == "DDMMYYYY"

    unknown = client.post(f"{ADMIN}/identifiers/{tenant}/template", json={"template_name": "NOPE"}, headers=headers)
    assert unknown.status_code == 400


def test_validate_configuration(client, headers, tenant):
    data = client.get(f"{ADMIN}/identifiers/{tenant}/validate", headers=headers).json()["data"]
    assert data == {"valid": True, "errors": []}


def test_usage_reset_and_cleanup(client, headers, tenant):
    usage = client.get(f"{ADMIN}/identifiers/{tenant}/usage", headers=headers).json()["data"]
    lab_counter = next(c for c in usage["counters"] if c["model_name"] == "Lab")
    assert lab_counter["max_counter"] == 1
    assert usage["stats"]["total_identifiers_generated"] >= 1

    reset = client.post(f"{ADMIN}/identifiers/{tenant}/models/Lab/reset", headers=headers)
    assert reset.json()["data"] == {"model_name": "Lab", "counter": 0}

    cleanup = client.post(f"{ADMIN}/identifiers/{tenant}/cleanup", params={"days_old": 30}, headers=headers)
    assert cleanup.json()["data"] == {"deleted": 0}


def test_admin_requires_superadmin(client, make_partner, make_user, token_for):
    partner = make_partner(subdomain="apollo")
    owner = make_user(role=UserRole.PARTNER, partner=partner)

    response = client.get(f"{ADMIN}/cache/stats", headers=bearer(token_for(owner), "apollo.pathosaathi.in"))

    assert response.status_code == 403
