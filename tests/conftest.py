"""
Shared test fixtures.

Environment variables must be set before pathosaathi is imported: settings
are cached and the password context reads BCRYPT_ROUNDS at import time.
"""
import itertools
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["APP_DOMAIN"] = "pathosaathi.in"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pathosaathi.config import get_settings
from pathosaathi.core.security import create_token_pair, get_password_hash
from pathosaathi.database import configure_engine
from pathosaathi.main import create_app
from pathosaathi.models.partner import PartnerType, PaymentStatus
from pathosaathi.models.user import UserRole
from pathosaathi.schemas.partner import PartnerCreate
from pathosaathi.services.tenant_config import ROOT_TENANT
from pathosaathi.state import AppState

PASSWORD = "Password123!"
MAIN_HOST = "pathosaathi.in"

_sequence = itertools.count(1)


def unique_phone() -> str:
    return f"98{next(_sequence):08d}"


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session (single connection)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_engine(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def state(engine, settings):
    state = AppState(settings, engine=engine)
    state.models.initialize_core_models()
    return state


@pytest.fixture
def db(state):
    """
    Session for arranging and asserting.

    Commit fixture data before calling the API: request sessions share the
    same connection and roll back whatever is pending when they close.
    """
    session = state.session_factory()
    yield session
    session.close()


@pytest.fixture
def client(state):
    """Test client on the platform's main domain. Per-request Host overrides select a tenant."""
    return TestClient(create_app(state), base_url=f"http://{MAIN_HOST}")


@pytest.fixture
def make_partner(state, db):
    def _make(
        company_name="Apollo Labs",
        subdomain="apollo",
        custom_domain=None,
        partner_type=PartnerType.WHITE_LABEL,
        paid=True,
        is_root_tenant=False,
        **overrides,
    ):
        n = next(_sequence)
        data = PartnerCreate(
            company_name=company_name,
            owner_name="Ravi Kumar",
            email=overrides.pop("email", f"partner{n}@example.com"),
            phone=overrides.pop("phone", unique_phone()),
            partner_type=partner_type,
            subdomain=subdomain,
            custom_domain=custom_domain,
            is_root_tenant=is_root_tenant,
            **overrides,
        )
        partner = state.partners.create_partner(db, data, created_by="test")
        if paid:
            partner = state.partners.update_payment_status(db, partner.id, PaymentStatus.PAID, "txn_test")
        return partner

    return _make


@pytest.fixture
def make_lab(state, db):
    def _make(partner=None, lab_name="City Diagnostics"):
        tenant = partner.tenant_prefix if partner is not None else ROOT_TENANT
        Lab = state.models.get(tenant, "Lab")
        lab = Lab(
            identifier=state.identifiers.next_identifier(db, tenant, "Lab"),
            lab_name=lab_name,
            partner_id=partner.id if partner is not None else None,
        )
        db.add(lab)
        db.commit()
        return lab

    return _make


@pytest.fixture
def make_user(state, db):
    def _make(
        role=UserRole.SUPERADMIN,
        partner=None,
        lab=None,
        email=None,
        phone=None,
        password=PASSWORD,
        is_active=True,
        name="Test User",
    ):
        tenant = state.models.get_tenant_prefix_for_user(role, partner)
        User = state.models.get(tenant, "User")
        n = next(_sequence)
        user = User(
            identifier=state.identifiers.next_identifier(db, tenant, "User"),
            name=name,
            email=email if email is not None else f"user{n}@example.com",
            phone=phone,
            hashed_password=get_password_hash(password),
            role=role,
            partner_id=partner.id if partner is not None else None,
            lab_id=lab.id if lab is not None else None,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def token_for(state, db):
    """Access token for a stored user, bound to the audience login would give it."""

    def _token(user):
        partner = state.auth.get_partner(db, user.partner_id)
        claims, audience = state.auth.build_claims(user, partner, "test-session")
        return create_token_pair(claims, audience=audience)["access_token"]

    return _token


def bearer(token: str, host: str = MAIN_HOST) -> dict:
    return {"Authorization": f"Bearer {token}", "host": host}
