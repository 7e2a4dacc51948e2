"""
Tenant switch tests — preconditions and their order.
"""

from village_access.models import db
from village_access.models.auth import Membership
from village_access.services.context_models import FailureReason
from village_access.services.membership_store import SqlAlchemyMembershipStore
from village_access.services.tenant_switcher import switch_tenant


def _switch(user, tenant):
    return switch_tenant(SqlAlchemyMembershipStore(), user.id, tenant.id)


class TestSwitchTenant:
    def test_switch_into_active_tenant(self, village, roles):
        result = _switch(village["alice"], village["t2"])

        assert result.success is True
        assert result.tenant_id == village["t2"].id
        assert result.role_id == roles["household-head"].id
        assert result.role_code == "household-head"
        assert result.error is None

    def test_no_membership(self, village):
        result = _switch(village["bob"], village["t2"])

        assert result.success is False
        assert result.reason is FailureReason.NOT_FOUND
        assert result.error == "user does not have access to tenant"

    def test_inactive_membership(self, village):
        bob = village["bob"]
        m = Membership.query.filter_by(user_id=bob.id, tenant_id=village["t1"].id).first()
        m.is_active = False
        db.session.commit()

        result = _switch(bob, village["t1"])
        assert result.success is False
        assert result.reason is FailureReason.INACTIVE
        assert result.error == "membership is inactive"

    def test_suspended_tenant(self, village):
        result = _switch(village["carol"], village["suspended"])

        assert result.success is False
        assert result.reason is FailureReason.INACTIVE
        assert result.error == "tenant is not active"

    def test_trial_tenant_cannot_be_switched_into(self, village, make_user, add_member):
        erin = make_user("erin@example.com")
        add_member(erin, village["trial"], "household-head")

        result = _switch(erin, village["trial"])
        assert result.success is False
        assert result.error == "tenant is not active"

    def test_inactive_membership_checked_before_tenant_status(self, village, make_user, add_member):
        gina = make_user("gina@example.com")
        add_member(gina, village["suspended"], "household-member", is_active=False)

        result = _switch(gina, village["suspended"])
        assert result.error == "membership is inactive"

    def test_to_dict(self, village):
        ok = _switch(village["alice"], village["t2"]).to_dict()
        assert ok == {
            "success": True,
            "tenant_id": village["t2"].id,
            "role_id": ok["role_id"],
            "role_code": "household-head",
        }
        denied = _switch(village["bob"], village["t2"]).to_dict()
        assert denied == {
            "success": False,
            "error": "user does not have access to tenant",
            "reason": "not_found",
        }

    def test_switch_is_idempotent(self, village):
        first = _switch(village["alice"], village["t2"])
        second = _switch(village["alice"], village["t2"])
        assert first == second
