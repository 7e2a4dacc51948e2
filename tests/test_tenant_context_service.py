"""
Tenant context service tests — switch-then-refresh, store faults, freshness.
"""

import pytest
from sqlalchemy.exc import OperationalError

from village_access.core.exceptions import CredentialRefreshError
from village_access.models import db
from village_access.models.auth import Membership
from village_access.services.context_models import FailureReason, SessionContext
from village_access.services.membership_store import MembershipStore, SqlAlchemyMembershipStore
from village_access.services.tenant_context_service import CredentialIssuer, TenantContextService


class RecordingIssuer(CredentialIssuer):
    def __init__(self, fail=False):
        self.fail = fail
        self.issued = []

    def issue(self, context):
        if self.fail:
            raise RuntimeError("signing key unavailable")
        self.issued.append(context)
        return {"access_token": f"token-{context.tenant_id}"}


class UnreachableStore(MembershipStore):
    """Every read fails as if the database connection dropped."""

    def _fail(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    get_membership = list_memberships = get_role = get_tenant = add_membership = _fail


@pytest.fixture()
def service():
    return TenantContextService()


class TestSwitchAndRefresh:
    def test_success_issues_new_context(self, service, village, roles):
        alice, t2 = village["alice"], village["t2"]
        issuer = RecordingIssuer()

        result, tokens = service.switch_and_refresh(alice.id, t2.id, issuer)

        assert result.success is True
        assert tokens == {"access_token": f"token-{t2.id}"}
        assert issuer.issued == [SessionContext(alice.id, t2.id, roles["household-head"].id)]

    def test_refused_switch_never_calls_issuer(self, service, village):
        issuer = RecordingIssuer()
        result, tokens = service.switch_and_refresh(village["bob"].id, village["t2"].id, issuer)

        assert result.success is False
        assert result.reason is FailureReason.NOT_FOUND
        assert tokens is None
        assert issuer.issued == []

    def test_issuer_failure_is_surfaced(self, service, village):
        alice, t2 = village["alice"], village["t2"]

        with pytest.raises(CredentialRefreshError) as exc_info:
            service.switch_and_refresh(alice.id, t2.id, RecordingIssuer(fail=True))

        assert exc_info.value.switch_result.success is True
        assert exc_info.value.switch_result.tenant_id == t2.id
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestStartSession:
    def test_single_membership_embeds_context(self, service, village):
        issuer = RecordingIssuer()
        result, tokens = service.start_session(village["bob"].id, issuer)

        assert result.auto_selected is True
        assert issuer.issued[0].tenant_id == village["t1"].id

    def test_multiple_memberships_issue_tenantless_credential(self, service, village):
        issuer = RecordingIssuer()
        result, tokens = service.start_session(village["alice"].id, issuer)

        assert result.requires_selection is True
        assert issuer.issued == [SessionContext(village["alice"].id)]
        assert tokens == {"access_token": "token-None"}


class TestStoreFaults:
    def test_switch_propagates_store_fault(self):
        with pytest.raises(OperationalError):
            TenantContextService(UnreachableStore()).switch_tenant(1, 1)

    def test_validate_propagates_store_fault(self):
        with pytest.raises(OperationalError):
            TenantContextService(UnreachableStore()).validate_session(SessionContext(1, 1, 1))

    def test_bootstrap_propagates_store_fault(self):
        with pytest.raises(OperationalError):
            TenantContextService(UnreachableStore()).bootstrap(1)

    def test_sqlalchemy_store_fault_propagates(self, service, village, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("timeout"))

        monkeypatch.setattr(SqlAlchemyMembershipStore, "get_membership", broken)
        with pytest.raises(OperationalError):
            service.switch_tenant(village["alice"].id, village["t2"].id)


class TestFreshness:
    def test_deactivation_visible_to_next_call(self, service, village, roles):
        bob, t1 = village["bob"], village["t1"]
        claims = SessionContext(bob.id, t1.id, roles["household-member"].id)
        assert service.validate_session(claims).valid is True

        Membership.query.filter_by(user_id=bob.id, tenant_id=t1.id).update({"is_active": False})
        db.session.commit()

        assert service.validate_session(claims).valid is False

    def test_override_change_visible_to_next_call(self, service, village, roles):
        alice, t1 = village["alice"], village["t1"]
        claims = SessionContext(alice.id, t1.id, roles["admin-head"].id)
        before = service.validate_session(claims).membership
        assert service.check_permission(before, "manage_users") is False

        m = Membership.query.filter_by(user_id=alice.id, tenant_id=t1.id).first()
        m.permission_overrides = {}
        db.session.commit()

        after = service.validate_session(claims).membership
        assert service.check_permission(after, "manage_users") is True
        # the earlier snapshot is unchanged
        assert service.check_permission(before, "manage_users") is False


class TestPermissions:
    def test_check_permissions_batch(self, service, village, roles):
        alice, t1 = village["alice"], village["t1"]
        membership = service.validate_session(SessionContext(alice.id, t1.id, roles["admin-head"].id)).membership

        assert service.check_permissions(membership, ["manage_users", "view_reports"]) == {
            "manage_users": False,
            "view_reports": True,
        }
        assert service.get_permissions(membership).overridden_keys() == ["manage_users"]

    def test_same_user_other_tenant_uses_role_defaults(self, service, village, roles):
        alice, t2 = village["alice"], village["t2"]
        membership = service.validate_session(SessionContext(alice.id, t2.id, roles["household-head"].id)).membership

        assert service.check_permission(membership, "manage_users") is False
        assert service.check_permission(membership, "manage_household") is True
        assert service.get_permissions(membership).overridden_keys() == []

    def test_can_manage(self, service, village):
        store = SqlAlchemyMembershipStore()
        admin = store.get_membership(village["alice"].id, village["t1"].id)
        resident = store.get_membership(village["bob"].id, village["t1"].id)
        other_tenant = store.get_membership(village["alice"].id, village["t2"].id)

        assert service.can_manage(admin, resident) is True
        assert service.can_manage(resident, admin) is False
        assert service.can_manage(admin, other_tenant) is False

    def test_list_accessible_tenants(self, service, village):
        tenants = service.list_accessible_tenants(village["alice"].id)
        assert {m.tenant_id for m in tenants} == {village["t1"].id, village["t2"].id}
