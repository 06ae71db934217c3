"""
Tests for staff user management endpoints.
"""
import pytest

from conftest import PASSWORD, bearer
from pathosaathi.models.user import UserRole

USERS = "/api/v1/users"
APOLLO = "apollo.pathosaathi.in"


@pytest.fixture
def partner(make_partner):
    return make_partner(subdomain="apollo")


@pytest.fixture
def lab(make_lab, partner):
    return make_lab(partner, lab_name="City Diagnostics")


@pytest.fixture
def lab_owner(make_user, partner, lab):
    return make_user(role=UserRole.LAB_OWNER, partner=partner, lab=lab, email="owner@citydiag.in")


@pytest.fixture
def owner_headers(lab_owner, token_for):
    return bearer(token_for(lab_owner), APOLLO)


def test_lab_owner_creates_staff_in_own_lab(client, state, db, owner_headers, partner, lab):
    response = client.post(
        USERS,
        json={"name": "Kiran", "email": "Kiran@CityDiag.in", "password": PASSWORD, "role": "TECH"},
        headers=owner_headers,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["email"] == "kiran@citydiag.in"
    assert data["role"] == "TECH"
    assert data["lab_id"] == lab.id
    assert data["partner_id"] == partner.id
    assert "hashed_password" not in data

    User = state.models.get(partner.tenant_prefix, "User")
    assert db.query(User).filter(User.id == data["id"]).count() == 1


def test_cannot_create_higher_role(client, owner_headers):
    response = client.post(
        USERS,
        json={"name": "Boss", "email": "boss@citydiag.in", "password": PASSWORD, "role": "PARTNER"},
        headers=owner_headers,
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_ROLE"


def test_lab_role_requires_lab(client, make_user, token_for):
    admin = make_user(role=UserRole.SUPERADMIN)

    response = client.post(
        USERS,
        json={"name": "Kiran", "email": "kiran@citydiag.in", "password": PASSWORD, "role": "TECH"},
        headers=bearer(token_for(admin)),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "lab_id is required for TECH users"


def test_superadmin_creates_support_staff(client, make_user, token_for):
    admin = make_user(role=UserRole.SUPERADMIN)

    response = client.post(
        USERS,
        json={"name": "Meera", "email": "meera@pathosaathi.in", "password": PASSWORD, "role": "CUSTOMER_SUPPORT"},
        headers=bearer(token_for(admin)),
    )

    assert response.status_code == 201
    assert response.json()["data"]["lab_id"] is None


def test_duplicate_email(client, owner_headers):
    response = client.post(
        USERS,
        json={"name": "Copy", "email": "owner@citydiag.in", "password": PASSWORD, "role": "RECEPTION"},
        headers=owner_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"]["details"] == {"field": "email"}


def test_email_or_phone_required(client, owner_headers):
    response = client.post(USERS, json={"name": "Nobody", "password": PASSWORD, "role": "TECH"}, headers=owner_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_list_is_scoped_to_lab(client, make_user, make_lab, partner, lab, lab_owner, owner_headers):
    make_user(role=UserRole.TECH, partner=partner, lab=lab)
    other_lab = make_lab(partner, lab_name="Metro Diagnostics")
    make_user(role=UserRole.TECH, partner=partner, lab=other_lab)

    everyone = client.get(USERS, headers=owner_headers).json()["data"]
    techs = client.get(USERS, params={"role": "TECH"}, headers=owner_headers).json()["data"]

    assert everyone["total"] == 2
    assert {user["lab_id"] for user in everyone["users"]} == {lab.id}
    assert techs["total"] == 1
    assert techs["page_size"] == 10


def test_get_user_outside_scope(client, make_user, make_lab, partner, owner_headers, lab_owner):
    stranger = make_user(role=UserRole.TECH, partner=partner, lab=make_lab(partner, lab_name="Metro Diagnostics"))

    assert client.get(f"{USERS}/{lab_owner.id}", headers=owner_headers).status_code == 200

    response = client.get(f"{USERS}/{stranger.id}", headers=owner_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "User not found"


def test_tech_cannot_manage_users(client, make_user, partner, lab, token_for):
    tech = make_user(role=UserRole.TECH, partner=partner, lab=lab)

    response = client.get(USERS, headers=bearer(token_for(tech), APOLLO))

    assert response.status_code == 403
