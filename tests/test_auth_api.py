"""
Auth API tests — login, refresh, logout, tenant switch, session introspection.
"""

import pytest

from village_access.models import db
from village_access.models.auth import Session
from village_access.services import membership_service
from village_access.services.jwt_service import JwtCredentialIssuer, decode_access_token
from village_access.utils.crypto import hash_password

PASSWORD = "SecurePass123!"


@pytest.fixture()
def residents(village):
    """Village users with a known password."""
    hashed = hash_password(PASSWORD)
    for key in ("alice", "bob", "carol"):
        village[key].password_hash = hashed
    db.session.commit()
    return village


def _login(client, email):
    res = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert res.status_code == 200, res.get_json()
    return res.get_json()


def _bearer(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


# ═══════════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════════
class TestLogin:
    def test_single_membership_embeds_tenant(self, client, residents, roles):
        data = _login(client, "bob@example.com")

        claims = decode_access_token(data["access_token"])
        assert claims["tenant_id"] == residents["t1"].id
        assert claims["role_id"] == roles["household-member"].id
        assert data["context"]["auto_selected"] is True
        assert data["token_type"] == "Bearer"

    def test_multiple_memberships_require_selection(self, client, residents):
        data = _login(client, "alice@example.com")

        claims = decode_access_token(data["access_token"])
        assert "tenant_id" not in claims
        assert data["context"]["requires_selection"] is True
        assert len(data["context"]["tenants"]) == 2

    def test_relogin_keeps_switched_context(self, client, residents, roles):
        tokens = _login(client, "alice@example.com")
        t2 = residents["t2"]
        res = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": t2.id, "refresh_token": tokens["refresh_token"]},
            headers=_bearer(tokens),
        )
        assert res.status_code == 200

        data = _login(client, "alice@example.com")

        assert data["context"]["has_context"] is True
        assert data["context"]["requires_selection"] is False
        assert data["context"]["active"] == {"tenant_id": t2.id, "role_id": roles["household-head"].id}
        assert decode_access_token(data["access_token"])["tenant_id"] == t2.id

    def test_relogin_keeps_bearer_context(self, client, residents, roles, auth_headers):
        alice, t1 = residents["alice"], residents["t1"]
        res = client.post(
            "/api/v1/auth/login",
            json={"email": "alice@example.com", "password": PASSWORD},
            headers=auth_headers(alice.id, t1.id, roles["admin-head"].id),
        )
        assert res.status_code == 200
        context = res.get_json()["context"]
        assert context["has_context"] is True
        assert context["active"]["tenant_id"] == t1.id

    def test_relogin_drops_revoked_context(self, client, residents):
        tokens = _login(client, "alice@example.com")
        t2 = residents["t2"]
        client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": t2.id, "refresh_token": tokens["refresh_token"]},
            headers=_bearer(tokens),
        )
        membership_service.deactivate_membership(t2.id, residents["alice"].id)

        data = _login(client, "alice@example.com")

        assert data["context"]["has_context"] is False
        # only t1 is left, and it is active
        assert data["context"]["auto_selected"] is True
        assert decode_access_token(data["access_token"])["tenant_id"] == residents["t1"].id

    def test_session_records_context(self, client, residents):
        _login(client, "bob@example.com")
        session = Session.query.filter_by(user_id=residents["bob"].id, is_active=True).one()
        assert session.tenant_id == residents["t1"].id

    def test_wrong_password(self, client, residents):
        res = client.post("/api/v1/auth/login", json={"email": "bob@example.com", "password": "nope"})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={"email": "bob@example.com"})
        assert res.status_code == 400

    def test_inactive_account(self, client, residents):
        residents["bob"].status = "suspended"
        db.session.commit()
        res = client.post("/api/v1/auth/login", json={"email": "bob@example.com", "password": PASSWORD})
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# Switch tenant
# ═══════════════════════════════════════════════════════════════
class TestSwitchTenant:
    def test_switch_reissues_credential(self, client, residents, roles):
        tokens = _login(client, "alice@example.com")
        t2 = residents["t2"]

        res = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": t2.id, "refresh_token": tokens["refresh_token"]},
            headers=_bearer(tokens),
        )
        assert res.status_code == 200
        data = res.get_json()
        claims = decode_access_token(data["access_token"])
        assert claims["tenant_id"] == t2.id
        assert claims["role_id"] == roles["household-head"].id
        assert data["context"]["role_code"] == "household-head"

        # the pre-switch refresh token was rotated out
        old = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert old.status_code == 401

    def test_switch_without_access(self, client, residents, auth_headers):
        bob = residents["bob"]
        res = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": residents["t2"].id},
            headers=auth_headers(bob.id),
        )
        assert res.status_code == 404
        body = res.get_json()
        assert body["error"] == "user does not have access to tenant"
        assert body["details"]["reason"] == "not_found"

    def test_switch_into_suspended_tenant(self, client, residents, auth_headers):
        carol = residents["carol"]
        res = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": residents["suspended"].id},
            headers=auth_headers(carol.id),
        )
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_INACTIVE"
        assert res.get_json()["error"] == "tenant is not active"

    def test_tenant_id_must_be_integer(self, client, residents, auth_headers):
        res = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": "2"},
            headers=auth_headers(residents["alice"].id),
        )
        assert res.status_code == 400

    def test_requires_authentication(self, client, residents):
        res = client.post("/api/v1/auth/switch-tenant", json={"tenant_id": residents["t2"].id})
        assert res.status_code == 401

    def test_issue_failure_reported(self, client, residents, auth_headers, monkeypatch):
        def broken(self, context):
            raise RuntimeError("signing key unavailable")

        monkeypatch.setattr(JwtCredentialIssuer, "issue", broken)
        res = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": residents["t2"].id},
            headers=auth_headers(residents["alice"].id),
        )
        assert res.status_code == 502
        assert res.get_json()["code"] == "ERR_CREDENTIAL_REFRESH"


# ═══════════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════════
class TestRefresh:
    def test_refresh_keeps_context(self, client, residents):
        tokens = _login(client, "bob@example.com")

        res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 200
        claims = decode_access_token(res.get_json()["access_token"])
        assert claims["tenant_id"] == residents["t1"].id

    def test_refresh_after_role_change_requires_login(self, client, residents, roles):
        tokens = _login(client, "bob@example.com")
        membership_service.change_role(residents["t1"].id, residents["bob"].id, roles["household-head"].id)

        res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 401
        body = res.get_json()
        assert body["code"] == "ERR_STALE_CONTEXT"
        assert body["details"]["reauthenticate"] is True
        assert Session.query.filter_by(user_id=residents["bob"].id, is_active=True).count() == 0

    def test_refresh_after_deactivation(self, client, residents):
        tokens = _login(client, "bob@example.com")
        membership_service.deactivate_membership(residents["t1"].id, residents["bob"].id)

        res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 403
        assert res.get_json()["error"] == "membership is inactive"

    def test_refresh_without_context(self, client, residents):
        tokens = _login(client, "alice@example.com")
        res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 200
        assert "tenant_id" not in decode_access_token(res.get_json()["access_token"])

    def test_access_token_is_not_a_refresh_token(self, client, residents):
        tokens = _login(client, "bob@example.com")
        res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert res.status_code == 401

    def test_garbage_token(self, client):
        res = client.post("/api/v1/auth/refresh", json={"refresh_token": "not-a-jwt"})
        assert res.status_code == 401


# ═══════════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════════
class TestLogout:
    def test_logout_revokes_and_clears_context(self, client, residents):
        tokens = _login(client, "bob@example.com")

        res = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 200

        session = Session.query.filter_by(user_id=residents["bob"].id).one()
        assert session.is_active is False
        assert session.tenant_id is None
        assert session.role_id is None

        res = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 401

    def test_logout_everywhere(self, client, residents):
        first = _login(client, "bob@example.com")
        _login(client, "bob@example.com")

        res = client.post("/api/v1/auth/logout", headers=_bearer(first))
        assert res.status_code == 200
        assert Session.query.filter_by(user_id=residents["bob"].id, is_active=True).count() == 0

    def test_logout_requires_something(self, client):
        assert client.post("/api/v1/auth/logout", json={}).status_code == 401


# ═══════════════════════════════════════════════════════════════
# Introspection
# ═══════════════════════════════════════════════════════════════
class TestIntrospection:
    def test_me(self, client, residents, auth_headers, roles):
        bob = residents["bob"]
        res = client.get("/api/v1/auth/me", headers=auth_headers(bob.id, residents["t1"].id, roles["household-member"].id))
        assert res.status_code == 200
        data = res.get_json()
        assert data["user"]["email"] == "bob@example.com"
        assert data["context"]["tenant_id"] == residents["t1"].id

    def test_me_requires_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_expired_token(self, app, client, residents, auth_headers, monkeypatch):
        monkeypatch.setitem(app.config, "JWT_ACCESS_EXPIRES", -1)
        headers = auth_headers(residents["bob"].id)
        res = client.get("/api/v1/auth/me", headers=headers)
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token expired"

    def test_tenants(self, client, residents, auth_headers):
        res = client.get("/api/v1/auth/tenants", headers=auth_headers(residents["alice"].id))
        assert res.status_code == 200
        slugs = [t["tenant_slug"] for t in res.get_json()["tenants"]]
        assert slugs == ["green-valley", "palm-heights"]

    def test_session_valid(self, client, residents, auth_headers, roles):
        bob = residents["bob"]
        res = client.get("/api/v1/auth/session", headers=auth_headers(bob.id, residents["t1"].id, roles["household-member"].id))
        assert res.status_code == 200
        data = res.get_json()
        assert data["valid"] is True
        assert data["role"]["code"] == "household-member"

    def test_session_stale(self, client, residents, auth_headers, roles):
        bob = residents["bob"]
        res = client.get("/api/v1/auth/session", headers=auth_headers(bob.id, residents["t1"].id, roles["admin-head"].id))
        data = res.get_json()
        assert data["valid"] is False
        assert data["reason"] == "stale_context"
        assert data["requires_reauthentication"] is True

    def test_permissions_with_provenance(self, client, residents, auth_headers, roles):
        alice = residents["alice"]
        res = client.get(
            "/api/v1/auth/permissions",
            headers=auth_headers(alice.id, residents["t1"].id, roles["admin-head"].id),
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["permissions"]["manage_users"] is False
        assert data["permissions"]["view_reports"] is True
        entry = next(e for e in data["entries"] if e["key"] == "manage_users")
        assert entry["provenance"] == "override"

    def test_permissions_check(self, client, residents, auth_headers, roles):
        alice = residents["alice"]
        res = client.post(
            "/api/v1/auth/permissions/check",
            json={"keys": ["manage_users", "manage_household", "unknown_key"]},
            headers=auth_headers(alice.id, residents["t1"].id, roles["admin-head"].id),
        )
        assert res.status_code == 200
        assert res.get_json()["results"] == {
            "manage_users": False,
            "manage_household": True,
            "unknown_key": False,
        }

    def test_permissions_without_context(self, client, residents, auth_headers):
        res = client.get("/api/v1/auth/permissions", headers=auth_headers(residents["alice"].id))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_NO_CONTEXT"


# ═══════════════════════════════════════════════════════════════
# User service
# ═══════════════════════════════════════════════════════════════
class TestUserService:
    def test_create_user_normalizes_email(self):
        from village_access.services.user_service import create_user, get_user_by_email

        user = create_user("Dave@villagemail.com", PASSWORD, full_name="Dave")
        assert get_user_by_email("dave@villagemail.com").id == user.id

    def test_invalid_email(self):
        from village_access.services.user_service import UserServiceError, create_user

        with pytest.raises(UserServiceError):
            create_user("not-an-email", PASSWORD)

    def test_duplicate_email(self):
        from village_access.services.user_service import UserServiceError, create_user

        create_user("dave@villagemail.com", PASSWORD)
        with pytest.raises(UserServiceError) as exc_info:
            create_user("dave@villagemail.com", PASSWORD)
        assert exc_info.value.status_code == 409

    def test_short_password(self):
        from village_access.services.user_service import UserServiceError, create_user

        with pytest.raises(UserServiceError):
            create_user("dave@villagemail.com", "short")
