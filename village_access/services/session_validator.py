"""
Session Context Validator — re-checks credential claims against live state.

A credential is a deliberately stale cache of (tenant, role). Between its
issue and its next refresh, an administrator may deactivate the membership,
change the role, or suspend the community. Every tenant-scoped request passes
through ``validate_session`` before it may touch tenant data.

Checks (first failure wins):
  1. tenant claim present                       else no_context
  2. membership (user, tenant) exists           else not_found
  3. membership active                          else inactive
  4. tenant row exists and is operable          else not_found / inactive
  5. role exists and is active                  else not_found
  6. claimed role matches membership's role     else stale_context

The lookup is a single joined read (membership + tenant + role).
"""

import logging

from village_access.services.context_models import (
    FailureReason,
    SessionContext,
    ValidationResult,
)
from village_access.services.membership_store import MembershipStore

logger = logging.getLogger(__name__)


def validate_session(store: MembershipStore, claims) -> ValidationResult:
    """Validate a credential's claims against live membership state.

    Args:
        store: Membership store to read from.
        claims: A SessionContext, or a decoded claims dict
                (``sub``/``user_id``, ``tenant_id``, ``role_id``).
    """
    context = claims if isinstance(claims, SessionContext) else SessionContext.from_claims(claims)

    if not context.has_tenant:
        return ValidationResult.failed(FailureReason.NO_CONTEXT, "no tenant context established")

    membership = store.get_membership(context.user_id, context.tenant_id)
    if membership is None:
        return _stale(context, FailureReason.NOT_FOUND, "user does not have access to tenant")
    if not membership.is_active:
        return _stale(context, FailureReason.INACTIVE, "membership is inactive")

    tenant = membership.tenant
    if tenant is None:
        return _stale(context, FailureReason.NOT_FOUND, "tenant not found")
    if not tenant.is_operable:
        return _stale(context, FailureReason.INACTIVE, f"tenant is {tenant.status}")

    role = membership.role
    if role is None or not role.is_active:
        return _stale(context, FailureReason.NOT_FOUND, "role not found")

    if context.role_id is not None and context.role_id != membership.role_id:
        return _stale(context, FailureReason.STALE_CONTEXT, "role has changed since credential was issued")

    return ValidationResult(valid=True, tenant=tenant, role=role, membership=membership)


def _stale(context: SessionContext, reason: FailureReason, error: str) -> ValidationResult:
    logger.warning(
        "Session context rejected: user=%s tenant=%s role=%s reason=%s",
        context.user_id, context.tenant_id, context.role_id, reason.value,
        extra={
            "user_id": context.user_id,
            "tenant_id": context.tenant_id,
            "role_id": context.role_id,
            "reason": reason.value,
        },
    )
    return ValidationResult.failed(reason, error)
