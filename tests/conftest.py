"""
Shared pytest fixtures for the Village Access test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - roles: Built-in roles keyed by code
    - make_tenant / make_user / add_member: entity factories
    - auth_headers: Bearer header for an arbitrary context
"""

import pytest

from village_access import create_app
from village_access.models import db as _db
from village_access.models.auth import Membership, Role, Tenant, User
from village_access.services.context_models import SessionContext
from village_access.services.jwt_service import generate_access_token
from village_access.services.role_catalog import seed_roles
from village_access.utils.crypto import hash_password


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Entity factories ─────────────────────────────────────────────────────


@pytest.fixture()
def roles():
    """Seed the built-in roles and return them keyed by code."""
    seed_roles()
    return {r.code: r for r in Role.query.all()}


@pytest.fixture()
def make_tenant():
    def _make(slug, status="active", name=None):
        t = Tenant(name=name or slug.replace("-", " ").title(), slug=slug, status=status)
        _db.session.add(t)
        _db.session.commit()
        return t
    return _make


@pytest.fixture()
def make_user():
    def _make(email, password=None, status="active"):
        u = User(
            email=email,
            password_hash=hash_password(password) if password else None,
            full_name=email.split("@")[0].title(),
            status=status,
        )
        _db.session.add(u)
        _db.session.commit()
        return u
    return _make


@pytest.fixture()
def add_member(roles):
    def _add(user, tenant, role_code, overrides=None, is_active=True):
        m = Membership(
            user_id=user.id,
            tenant_id=tenant.id,
            role_id=roles[role_code].id,
            permission_overrides=dict(overrides or {}),
            is_active=is_active,
        )
        _db.session.add(m)
        _db.session.commit()
        return m
    return _add


@pytest.fixture()
def village(make_tenant, make_user, add_member):
    """Two active communities, one trial, one suspended.

    alice: admin-head in T1 with manage_users revoked, household-head in T2
    bob:   household-member in T1 only
    carol: security-officer in the suspended community only
    """
    t1 = make_tenant("green-valley", "active")
    t2 = make_tenant("palm-heights", "active")
    trial = make_tenant("cedar-grove", "trial")
    suspended = make_tenant("oak-ridge", "suspended")

    alice = make_user("alice@example.com")
    bob = make_user("bob@example.com")
    carol = make_user("carol@example.com")

    add_member(alice, t1, "admin-head", overrides={"manage_users": False})
    add_member(alice, t2, "household-head")
    add_member(bob, t1, "household-member")
    add_member(carol, suspended, "security-officer")

    return {
        "t1": t1, "t2": t2, "trial": trial, "suspended": suspended,
        "alice": alice, "bob": bob, "carol": carol,
    }


# ── Auth helpers ─────────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers():
    """Bearer header carrying the given context claims."""
    def _headers(user_id, tenant_id=None, role_id=None):
        token = generate_access_token(SessionContext(user_id=user_id, tenant_id=tenant_id, role_id=role_id))
        return {"Authorization": f"Bearer {token}"}
    return _headers
