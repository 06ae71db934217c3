"""
Tests for branding resolution, CSS generation and partner branding
management.
"""
import pytest
from sqlalchemy.exc import OperationalError

from conftest import bearer
from pathosaathi.core.exceptions import NotFoundError, ValidationError
from pathosaathi.models.user import UserRole
from pathosaathi.services.branding import (
    DEFAULT_COLORS,
    build_preview,
    default_metadata,
    generate_css_variables,
    validate_branding,
    validate_colors,
)

APOLLO = "apollo.pathosaathi.in"
APOLLO_COLORS = {"primary": "#0a4d8c", "secondary": "#f39200", "background": "#ffffff", "text": "#1a1a1a"}


@pytest.fixture
def partner(make_partner):
    return make_partner(subdomain="apollo")


def test_css_variables_follow_fixed_order():
    css = generate_css_variables(
        {
            "layout": {"maxWidth": 1280, "borderRadius": 6},
            "typography": {"fontFamily": "Inter"},
            "colors": {"secondary": "#222222", "primary": "#111111"},
        }
    )

    assert css == (
        ":root {\n"
        "  --color-primary: #111111;\n"
        "  --color-secondary: #222222;\n"
        "  --font-family: Inter;\n"
        "  --border-radius: 6px;\n"
        "  --max-width: 1280px;\n"
        "}\n"
    )


def test_custom_css_is_appended():
    css = generate_css_variables({"colors": {"primary": "#111111"}, "customCSS": ".btn { color: red; }"})
    assert css.endswith("}\n\n.btn { color: red; }")


def test_css_for_empty_metadata():
    assert generate_css_variables(None) == ":root {\n}\n"


def test_default_metadata_renders_every_variable():
    css = generate_css_variables(default_metadata())
    assert css.count("--") == 17
    assert "--spacing-unit: 8px;" in css


def test_validate_colors():
    assert validate_colors(DEFAULT_COLORS) == (True, [])

    valid, errors = validate_colors({"primary": "blue", "secondary": "#abc", "background": "#ffffff", "accent": "#12345"})

    assert valid is False
    assert errors == [
        "primary must be a valid hex color",
        "text color is required",
        "accent must be a valid hex color",
    ]


def test_validate_branding_errors_and_warnings():
    result = validate_branding(
        colors=DEFAULT_COLORS,
        typography={"fontFamily": "x" * 101},
        layout={"maxWidth": 500, "borderRadius": 60},
    )

    assert result["valid"] is False
    assert result["errors"] == ["Border radius should be between 0 and 50 pixels"]
    assert result["warnings"] == [
        "Font family name is very long",
        "Max width should be between 800 and 2000 pixels",
    ]


def test_build_preview_overlays_defaults():
    preview = build_preview(brand_name="Apollo", colors={"primary": "#0a4d8c"}, custom_css="body {}")

    assert preview["branding"]["brandName"] == "Apollo"
    assert preview["branding"]["colors"]["primary"] == "#0a4d8c"
    assert preview["branding"]["colors"]["secondary"] == DEFAULT_COLORS["secondary"]
    assert "--color-primary: #0a4d8c;" in preview["css"]
    assert preview["css"].endswith("body {}")


# ============================================================================
# Service
# ============================================================================

def test_default_branding_is_created_once(state, db):
    first = state.branding.get_or_create_default_branding(db)
    second = state.branding.get_or_create_default_branding(db)

    assert first.id == second.id
    assert first.is_default is True
    assert first.identifier.startswith("PS_BRD_")


def test_root_request_resolves_default(state, db):
    resolved = state.branding.get_tenant_branding(db, state.resolver.resolve(db, "pathosaathi.in"))

    assert resolved.branding.is_default
    assert resolved.tenant_info == {"type": "ROOT", "name": "PathoSaathi", "subdomain": None, "custom_domain": None}


def test_partner_without_branding_gets_default_with_partner_name(state, db, partner):
    simple = state.branding.get_simple_branding(db, state.resolver.resolve(db, APOLLO))

    assert simple["tenant_type"] == "PARTNER"
    assert simple["tenant_name"] == "Apollo Labs"
    assert simple["brand_name"] == "PathoSaathi"


def test_update_creates_partner_branding_and_keeps_default(state, db, partner):
    default = state.branding.get_or_create_default_branding(db)
    partner.branding_id = default.id
    db.commit()

    branding = state.branding.update_partner_branding(
        db,
        partner.id,
        brand_name="Apollo Diagnostics",
        colors=APOLLO_COLORS,
    )

    assert branding.id != default.id
    assert branding.partner_id == partner.id
    assert branding.is_default is False
    assert partner.branding_id == branding.id
    assert branding.brand_metadata["brandName"] == "Apollo Diagnostics"
    assert branding.brand_metadata["colors"]["primary"] == "#0a4d8c"
    assert branding.brand_metadata["layout"]["maxWidth"] == 1200
    assert default.brand_metadata == default_metadata()


def test_second_update_merges_in_place(state, db, partner):
    first = state.branding.update_partner_branding(db, partner.id, brand_name="Apollo", custom_css=".a {}")
    second = state.branding.update_partner_branding(db, partner.id, brand_name="Apollo 2", logo_url="https://cdn/logo.png")

    assert second.id == first.id
    assert second.name == "Apollo 2"
    assert second.logo == "https://cdn/logo.png"
    assert second.brand_metadata["customCSS"] == ".a {}"
    assert second.brand_metadata["logoUrl"] == "https://cdn/logo.png"


def test_update_validation(state, db, partner):
    with pytest.raises(ValidationError) as exc:
        state.branding.update_partner_branding(db, partner.id, brand_name="")
    assert exc.value.message == "Brand name is required"

    with pytest.raises(ValidationError) as exc:
        state.branding.update_partner_branding(db, partner.id, brand_name="Apollo", colors={"primary": "red"})
    assert exc.value.message == "Invalid color configuration"
    assert "primary must be a valid hex color" in exc.value.details["errors"]


def test_partner_branding_lookups(state, db, partner):
    with pytest.raises(NotFoundError) as exc:
        state.branding.get_partner_branding(db, partner.id)
    assert exc.value.message == "Partner branding not found"

    with pytest.raises(NotFoundError) as exc:
        state.branding.get_partner_branding(db, "missing")
    assert exc.value.message == "Partner not found"


def test_reset_to_default(state, db, partner):
    state.branding.update_partner_branding(db, partner.id, brand_name="Apollo")

    default = state.branding.reset_partner_branding_to_default(db, partner.id)

    assert default.is_default
    assert partner.branding_id == default.id


def test_storage_failure_falls_back_to_default_css(state, db, monkeypatch):
    def broken(db):
        raise OperationalError("SELECT", {}, Exception("gone"))

    monkeypatch.setattr(state.branding, "get_or_create_default_branding", broken)
    context = state.resolver.resolve(db, "pathosaathi.in")

    assert state.branding.get_tenant_branding(db, context) is None
    css, resolved = state.branding.get_css(db, context)
    assert resolved is False
    assert "--color-primary: #1976d2;" in css
    assert state.branding.get_simple_branding(db, context)["brand_name"] == "PathoSaathi"


def test_active_fonts_sorted_by_name(state, db):
    Font = state.models.get("PS_ROOT", "Font")
    db.add_all([
        Font(name="Roboto", font_family="Roboto, sans-serif"),
        Font(name="Inter", font_family="Inter, sans-serif", google_font_url="https://fonts.googleapis.com/css2?family=Inter"),
        Font(name="Hidden", font_family="Hidden", is_active=False),
    ])
    db.commit()

    assert [font.name for font in state.branding.get_active_fonts(db)] == ["Inter", "Roboto"]


# ============================================================================
# API
# ============================================================================

def test_css_endpoint(client):
    response = client.get("/api/branding/css")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/css")
    assert response.headers["cache-control"] == "public, max-age=3600"
    assert response.text.startswith(":root {\n  --color-primary: #1976d2;")


def test_css_endpoint_for_partner(client, state, db, partner):
    state.branding.update_partner_branding(db, partner.id, brand_name="Apollo", colors=APOLLO_COLORS)

    response = client.get("/api/branding/css", headers={"host": APOLLO})

    assert "--color-primary: #0a4d8c;" in response.text


def test_config_endpoint(client, partner):
    response = client.get("/api/branding/config", headers={"host": APOLLO})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["tenant_info"]["type"] == "PARTNER"
    assert data["branding"]["metadata"]["colors"]["primary"] == "#1976d2"
    assert data["theme"] is None
    assert data["fonts"] == []


def test_simple_endpoint(client):
    data = client.get("/api/branding/simple").json()["data"]
    assert data["brand_name"] == "PathoSaathi"
    assert data["tenant_type"] == "ROOT"


def test_validate_endpoint(client):
    response = client.post(
        "/api/branding/validate",
        json={"colors": {"primary": "#fff"}, "layout": {"borderRadius": 8}},
    )

    data = response.json()["data"]
    assert data["valid"] is False
    assert "secondary color is required" in data["errors"]


def test_preview_endpoint(client):
    data = client.post("/api/branding/preview", json={"brand_name": "Apollo"}).json()["data"]
    assert data["branding"]["brandName"] == "Apollo"
    assert data["css"].startswith(":root {")


def test_partner_owner_updates_own_branding(client, state, db, partner, make_user, token_for):
    owner = make_user(role=UserRole.PARTNER, partner=partner)

    response = client.put(
        f"/api/branding/partner/{partner.id}",
        json={"brand_name": "Apollo Diagnostics", "colors": APOLLO_COLORS},
        headers=bearer(token_for(owner), APOLLO),
    )

    assert response.status_code == 200
    assert response.json()["data"]["metadata"]["brandName"] == "Apollo Diagnostics"

    fetched = client.get(f"/api/branding/partner/{partner.id}", headers=bearer(token_for(owner), APOLLO))
    assert fetched.json()["data"]["partner_id"] == partner.id


def test_partner_owner_cannot_touch_other_partner(client, partner, make_partner, make_user, token_for):
    other = make_partner(company_name="Metro Labs", subdomain="metro")
    owner = make_user(role=UserRole.PARTNER, partner=partner)

    response = client.put(
        f"/api/branding/partner/{other.id}",
        json={"brand_name": "Hijacked"},
        headers=bearer(token_for(owner), APOLLO),
    )

    assert response.status_code == 403


def test_lab_owner_cannot_manage_branding(client, partner, make_lab, make_user, token_for):
    lab_owner = make_user(role=UserRole.LAB_OWNER, partner=partner, lab=make_lab(partner))

    response = client.get(f"/api/branding/partner/{partner.id}", headers=bearer(token_for(lab_owner), APOLLO))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_ROLE"


def test_reset_requires_superadmin(client, state, db, partner, make_user, token_for):
    owner = make_user(role=UserRole.PARTNER, partner=partner)
    admin = make_user(role=UserRole.SUPERADMIN)

    denied = client.post(f"/api/branding/partner/{partner.id}/reset", headers=bearer(token_for(owner), APOLLO))
    allowed = client.post(f"/api/branding/partner/{partner.id}/reset", headers=bearer(token_for(admin)))

    assert denied.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json()["data"]["is_default"] is True
