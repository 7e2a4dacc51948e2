"""
Tenant Context Switcher — move a session to another community.

Preconditions, in order (first failure wins):
  1. a membership exists for (user, tenant)   "user does not have access to tenant"
  2. the membership is active                 "membership is inactive"
  3. the tenant status is ``active``          "tenant is not active"

Trial communities can be reached by an existing credential but cannot be
switched into. Failures are returned as SwitchResult(success=False), never
raised: asking for an inaccessible tenant is routine.

A successful switch only states what the new claims should be. The caller
must re-issue the credential; until then the old claims remain in force.
"""

import logging

from village_access.services.context_models import FailureReason, SwitchResult
from village_access.services.membership_store import MembershipStore

logger = logging.getLogger(__name__)

ERR_NO_ACCESS = "user does not have access to tenant"
ERR_MEMBERSHIP_INACTIVE = "membership is inactive"
ERR_TENANT_NOT_ACTIVE = "tenant is not active"
ERR_TENANT_NOT_FOUND = "tenant not found"


def switch_tenant(store: MembershipStore, user_id: int, tenant_id: int) -> SwitchResult:
    """Decide whether ``user_id`` may operate under ``tenant_id``."""
    membership = store.get_membership(user_id, tenant_id)
    if membership is None:
        return _denied(user_id, tenant_id, FailureReason.NOT_FOUND, ERR_NO_ACCESS)

    if not membership.is_active:
        return _denied(user_id, tenant_id, FailureReason.INACTIVE, ERR_MEMBERSHIP_INACTIVE)

    tenant = membership.tenant
    if tenant is None:
        return _denied(user_id, tenant_id, FailureReason.NOT_FOUND, ERR_TENANT_NOT_FOUND)
    if not tenant.is_switchable:
        return _denied(user_id, tenant_id, FailureReason.INACTIVE, ERR_TENANT_NOT_ACTIVE)

    logger.info(
        "User %d switched to tenant %d (role=%s)",
        user_id, tenant_id, membership.role.code if membership.role else membership.role_id,
        extra={"user_id": user_id, "tenant_id": tenant_id, "role_id": membership.role_id},
    )
    return SwitchResult(
        success=True,
        tenant_id=tenant_id,
        role_id=membership.role_id,
        role_code=membership.role.code if membership.role else None,
    )


def _denied(user_id: int, tenant_id: int, reason: FailureReason, error: str) -> SwitchResult:
    logger.warning(
        "Tenant switch denied: user=%d tenant=%d reason=%s",
        user_id, tenant_id, error,
        extra={"user_id": user_id, "tenant_id": tenant_id, "reason": reason.value},
    )
    return SwitchResult.failed(reason, error)
