"""
Tests for the authentication service: login policy, refresh and request
authentication.
"""
from datetime import datetime, timedelta

import pytest

from conftest import PASSWORD
from pathosaathi.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from pathosaathi.core.security import create_token_pair, verify_token
from pathosaathi.models.user import UserRole
from pathosaathi.services.auth import INVALID_CREDENTIALS_MESSAGE
from pathosaathi.services.tenant_config import ROOT_TENANT

MAIN = "pathosaathi.in"
APOLLO = "apollo.pathosaathi.in"


def login(state, db, host, **kwargs):
    context = state.resolver.resolve(db, host)
    kwargs.setdefault("password", PASSWORD)
    return state.auth.login(db, context=context, **kwargs)


@pytest.fixture
def partner(make_partner):
    return make_partner(subdomain="apollo")


@pytest.fixture
def lab_owner(partner, make_lab, make_user):
    lab = make_lab(partner)
    return make_user(role=UserRole.LAB_OWNER, partner=partner, lab=lab, email="owner@apollo.in")


# ============================================================================
# Login
# ============================================================================

def test_superadmin_login_on_main_domain(state, db, make_user):
    admin = make_user(role=UserRole.SUPERADMIN, email="admin@pathosaathi.in")

    result = login(state, db, MAIN, email="ADMIN@pathosaathi.in", ip_address="10.0.0.1")

    claims = verify_token(result["tokens"]["access_token"])
    assert claims["user"] == admin.id
    assert claims["aud"] == MAIN
    assert claims["is_root_user"] is True
    assert claims["tenant_prefix"] == ROOT_TENANT
    assert claims["session"] == result["session"]["session_id"]
    assert result["user"]["is_root_user"] is True
    assert result["session"]["domain"] == MAIN
    assert admin.last_login_at is not None
    assert admin.ip_address == "10.0.0.1"


def test_superadmin_rejected_on_partner_domain(state, db, partner, make_user):
    make_user(role=UserRole.SUPERADMIN, email="admin@pathosaathi.in")

    with pytest.raises(AuthenticationError) as exc:
        login(state, db, APOLLO, email="admin@pathosaathi.in")

    assert exc.value.error_code == "DOMAIN_MISMATCH"
    assert exc.value.message == "Root users must login from main domain (pathosaathi.in)"


def test_lab_user_login_on_partner_subdomain(state, db, partner, lab_owner):
    result = login(state, db, APOLLO, email="owner@apollo.in")

    claims = verify_token(result["tokens"]["access_token"])
    assert claims["aud"] == APOLLO
    assert claims["is_root_user"] is False
    assert claims["tenant_prefix"] == partner.tenant_prefix
    assert claims["partner_domain"] == APOLLO
    assert result["user"]["lab"]["id"] == lab_owner.lab_id
    assert result["user"]["partner"]["id"] == partner.id


def test_lab_user_is_unknown_on_main_domain(state, db, lab_owner):
    with pytest.raises(AuthenticationError) as exc:
        login(state, db, MAIN, email="owner@apollo.in")
    assert exc.value.error_code == "INVALID_CREDENTIALS"


def test_partner_owner_must_use_partner_domain(state, db, partner, make_user):
    make_user(role=UserRole.PARTNER, partner=partner, email="ravi@apollo.in")

    with pytest.raises(AuthenticationError) as exc:
        login(state, db, MAIN, email="ravi@apollo.in")

    assert exc.value.error_code == "DOMAIN_MISMATCH"
    assert exc.value.message == f"Access denied. Please login from {APOLLO}"

    result = login(state, db, APOLLO, email="ravi@apollo.in")
    assert verify_token(result["tokens"]["access_token"])["aud"] == APOLLO


def test_tokens_are_bound_to_the_login_hostname(state, db, make_partner, make_user):
    partner = make_partner(subdomain="apollo", custom_domain="lab.apollo.com")
    make_user(role=UserRole.PARTNER, partner=partner, email="ravi@apollo.in")

    on_subdomain = login(state, db, APOLLO, email="ravi@apollo.in")
    on_custom = login(state, db, "lab.apollo.com", email="ravi@apollo.in")

    subdomain_claims = verify_token(on_subdomain["tokens"]["access_token"])
    assert subdomain_claims["aud"] == APOLLO
    assert subdomain_claims["partner_domain"] == APOLLO
    assert verify_token(on_custom["tokens"]["access_token"])["aud"] == "lab.apollo.com"

    current = state.auth.authenticate(db, on_subdomain["tokens"]["access_token"], APOLLO)
    assert state.auth.validate_request_domain(current, state.resolver.resolve(db, APOLLO))["domain"] == APOLLO


def test_refresh_keeps_the_login_hostname(state, db, make_partner, make_user):
    partner = make_partner(subdomain="apollo", custom_domain="lab.apollo.com")
    make_user(role=UserRole.PARTNER, partner=partner, email="ravi@apollo.in")
    tokens = login(state, db, APOLLO, email="ravi@apollo.in")["tokens"]

    refreshed = state.auth.refresh(db, tokens["refresh_token"], APOLLO)["tokens"]

    claims = verify_token(refreshed["access_token"])
    assert claims["aud"] == APOLLO
    assert claims["partner_domain"] == APOLLO


def test_partner_without_hostnames_logs_in_on_main_domain(state, db, make_partner, make_user):
    partner = make_partner(subdomain=None)
    make_user(role=UserRole.PARTNER, partner=partner, email="ravi@apollo.in")

    result = login(state, db, MAIN, email="ravi@apollo.in")

    assert verify_token(result["tokens"]["access_token"])["aud"] == MAIN


def test_lab_user_of_partner_without_hostnames_logs_in_on_main_domain(state, db, make_partner, make_lab, make_user):
    partner = make_partner(subdomain=None)
    owner = make_user(role=UserRole.LAB_OWNER, partner=partner, lab=make_lab(partner), email="owner@citydiag.in")

    result = login(state, db, MAIN, email="owner@citydiag.in")

    claims = verify_token(result["tokens"]["access_token"])
    assert claims["user"] == owner.id
    assert claims["aud"] == MAIN
    assert claims["tenant_prefix"] == partner.tenant_prefix
    assert state.auth.authenticate(db, result["tokens"]["access_token"], MAIN).id == owner.id


def test_root_partner_users_are_root_users(state, db, make_partner, make_user):
    root = make_partner(company_name="PathoSaathi", subdomain=None, is_root_tenant=True)
    make_user(role=UserRole.CUSTOMER_SUPPORT, partner=root, email="support@pathosaathi.in")

    result = login(state, db, "app.pathosaathi.in", email="support@pathosaathi.in")

    claims = verify_token(result["tokens"]["access_token"])
    assert claims["is_root_user"] is True
    assert claims["aud"] == MAIN
    assert claims["tenant_prefix"] == ROOT_TENANT


def test_inactive_partner_blocks_login(state, db, partner, make_user):
    make_user(role=UserRole.PARTNER, partner=partner, email="ravi@apollo.in")
    partner.is_active = False
    db.commit()

    with pytest.raises(AuthenticationError) as exc:
        login(state, db, MAIN, email="ravi@apollo.in")

    assert exc.value.error_code == "PARTNER_INACTIVE"


def test_login_by_phone(state, db, make_user):
    admin = make_user(role=UserRole.SUPERADMIN, email=None, phone="9876543210")
    result = login(state, db, MAIN, phone="9876543210")
    assert result["user"]["id"] == admin.id


def test_unknown_user_and_wrong_password_look_the_same(state, db, make_user):
    make_user(role=UserRole.SUPERADMIN, email="admin@pathosaathi.in")

    with pytest.raises(AuthenticationError) as unknown:
        login(state, db, MAIN, email="nobody@pathosaathi.in")
    with pytest.raises(AuthenticationError) as wrong:
        login(state, db, MAIN, email="admin@pathosaathi.in", password="wrong-password")

    assert unknown.value.message == wrong.value.message == INVALID_CREDENTIALS_MESSAGE
    assert unknown.value.error_code == wrong.value.error_code == "INVALID_CREDENTIALS"


def test_inactive_user(state, db, make_user):
    make_user(role=UserRole.SUPERADMIN, email="old@pathosaathi.in", is_active=False)

    with pytest.raises(AuthenticationError) as exc:
        login(state, db, MAIN, email="old@pathosaathi.in")

    assert exc.value.error_code == "ACCOUNT_INACTIVE"


def test_failed_attempts_lock_the_account(state, db, settings, make_user):
    admin = make_user(role=UserRole.SUPERADMIN, email="admin@pathosaathi.in")

    for attempt in range(1, settings.MAX_LOGIN_ATTEMPTS + 1):
        with pytest.raises(AuthenticationError):
            login(state, db, MAIN, email="admin@pathosaathi.in", password="wrong-password")
        assert admin.login_attempts == attempt

    assert admin.is_locked()

    with pytest.raises(AuthenticationError) as exc:
        login(state, db, MAIN, email="admin@pathosaathi.in")

    assert exc.value.error_code == "ACCOUNT_LOCKED"
    assert exc.value.details["lock_until"] == admin.lock_until


def test_expired_lock_restarts_the_count(state, db, make_user):
    admin = make_user(role=UserRole.SUPERADMIN, email="admin@pathosaathi.in")
    admin.login_attempts = 5
    admin.lock_until = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(AuthenticationError):
        login(state, db, MAIN, email="admin@pathosaathi.in", password="wrong-password")

    assert admin.login_attempts == 1
    assert admin.lock_until is None


def test_successful_login_resets_attempts(state, db, make_user):
    admin = make_user(role=UserRole.SUPERADMIN, email="admin@pathosaathi.in")
    admin.login_attempts = 3
    db.commit()

    login(state, db, MAIN, email="admin@pathosaathi.in")

    assert admin.login_attempts == 0


# ============================================================================
# Refresh
# ============================================================================

def test_refresh_keeps_session(state, db, partner, lab_owner):
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]

    result = state.auth.refresh(db, tokens["refresh_token"], APOLLO)

    session = verify_token(tokens["access_token"])["session"]
    assert result["session_id"] == session
    assert verify_token(result["tokens"]["access_token"])["session"] == session


def test_access_token_cannot_refresh(state, db, partner, lab_owner):
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]

    with pytest.raises(AuthenticationError) as exc:
        state.auth.refresh(db, tokens["access_token"], APOLLO)

    assert exc.value.error_code == "TOKEN_INVALID"


def test_refresh_on_foreign_domain(state, db, partner, lab_owner, make_partner):
    make_partner(company_name="Metro Labs", subdomain="metro")
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]

    with pytest.raises(AuthenticationError) as exc:
        state.auth.refresh(db, tokens["refresh_token"], "metro.pathosaathi.in")

    assert exc.value.error_code == "DOMAIN_MISMATCH"


def test_refresh_for_deactivated_user(state, db, partner, lab_owner):
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]
    lab_owner.is_active = False
    db.commit()

    with pytest.raises(AuthenticationError) as exc:
        state.auth.refresh(db, tokens["refresh_token"], APOLLO)

    assert exc.value.message == "User account no longer active"


def test_garbage_refresh_token(state, db):
    with pytest.raises(AuthenticationError) as exc:
        state.auth.refresh(db, "garbage", MAIN)
    assert exc.value.message == "Invalid or expired refresh token"


# ============================================================================
# Request authentication
# ============================================================================

def test_authenticate_builds_caller(state, db, partner, lab_owner):
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]

    current = state.auth.authenticate(db, tokens["access_token"], APOLLO)

    assert current.id == lab_owner.id
    assert current.role == UserRole.LAB_OWNER
    assert current.lab_id == lab_owner.lab_id
    assert current.partner_id == partner.id
    assert current.tenant_prefix == partner.tenant_prefix
    assert current.partner_domain == APOLLO
    assert current.has_permission(UserRole.TECH)
    assert not current.has_permission(UserRole.PARTNER)


def test_refresh_token_is_not_an_access_token(state, db, partner, lab_owner):
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]

    with pytest.raises(AuthenticationError) as exc:
        state.auth.authenticate(db, tokens["refresh_token"], APOLLO)

    assert exc.value.message == "Invalid token"


def test_token_used_on_another_partner_domain(state, db, partner, lab_owner):
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]

    with pytest.raises(AuthorizationError) as exc:
        state.auth.authenticate(db, tokens["access_token"], "metro.pathosaathi.in")

    assert exc.value.status_code == 403
    assert exc.value.error_code == "DOMAIN_MISMATCH"


def test_deactivated_partner_rejects_tokens(state, db, partner, lab_owner):
    tokens = login(state, db, APOLLO, email="owner@apollo.in")["tokens"]
    partner.is_active = False
    db.commit()

    with pytest.raises(AuthorizationError) as exc:
        state.auth.authenticate(db, tokens["access_token"], APOLLO)

    assert exc.value.error_code == "PARTNER_INACTIVE"


def test_token_for_deleted_user(state, db):
    claims = {"user": "missing", "is_root_user": True, "tenant_prefix": ROOT_TENANT, "role": "SUPERADMIN"}
    token = create_token_pair(claims, audience=MAIN)["access_token"]

    with pytest.raises(AuthenticationError) as exc:
        state.auth.authenticate(db, token, MAIN)

    assert exc.value.error_code == "USER_NOT_FOUND"


def test_get_me_for_missing_user(state, db, make_user, token_for):
    admin = make_user(role=UserRole.SUPERADMIN)
    current = state.auth.authenticate(db, token_for(admin), MAIN)
    db.delete(admin)
    db.commit()

    with pytest.raises(NotFoundError):
        state.auth.get_me(db, current)


def test_validate_request_domain(state, db, partner, lab_owner, make_user, token_for):
    admin = make_user(role=UserRole.SUPERADMIN)
    root_caller = state.auth.authenticate(db, token_for(admin), MAIN)
    lab_caller = state.auth.authenticate(db, token_for(lab_owner), APOLLO)

    with pytest.raises(AuthorizationError) as exc:
        state.auth.validate_request_domain(root_caller, state.resolver.resolve(db, APOLLO))
    assert exc.value.error_code == "ROOT_DOMAIN_REQUIRED"

    with pytest.raises(AuthorizationError) as exc:
        state.auth.validate_request_domain(lab_caller, state.resolver.resolve(db, "metro.pathosaathi.in"))
    assert exc.value.error_code == "DOMAIN_NOT_ALLOWED"

    result = state.auth.validate_request_domain(lab_caller, state.resolver.resolve(db, APOLLO))
    assert result["domain"] == APOLLO
    assert result["user_role"] == "LAB_OWNER"
    assert result["is_root_user"] is False
