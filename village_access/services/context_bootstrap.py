"""
Context Bootstrap — decide the starting tenant context at login.

Policy:
  - existing credential context still valid     keep it (has_context)
  - no active memberships                       no context, nothing to select
  - exactly one, and its tenant is ``active``   auto-select it
  - otherwise                                   no context;
                                                requires_selection = count > 1

A single ``trial`` community is not auto-selected: it cannot be switched into
either, so selecting it at login would hand out a context the switcher would
refuse.

Bootstrap never mints credentials. When it auto-selects, the result reports
``requires_token_refresh`` and the caller re-issues the credential.
"""

import logging

from village_access.services.context_models import (
    BootstrapResult,
    MembershipRecord,
    SessionContext,
)
from village_access.services.membership_store import MembershipStore
from village_access.services.session_validator import validate_session

logger = logging.getLogger(__name__)


def list_accessible_tenants(store: MembershipStore, user_id: int) -> list[MembershipRecord]:
    """Active memberships of a user, oldest first."""
    return store.list_memberships(user_id, active_only=True)


def bootstrap(
    store: MembershipStore,
    user_id: int,
    current: SessionContext | None = None,
) -> BootstrapResult:
    """Compute the login-time context for ``user_id``.

    Args:
        store: Membership store to read from.
        user_id: The authenticated user.
        current: Context carried by a credential the caller already holds,
                 if any. Kept when it still validates against live state.
    """
    memberships = list_accessible_tenants(store, user_id)

    if current is not None and current.user_id == user_id and current.has_tenant:
        validation = validate_session(store, current)
        if validation.valid:
            return BootstrapResult(
                tenants=memberships,
                active=current.with_tenant(validation.membership.tenant_id, validation.membership.role_id),
                requires_selection=False,
                has_context=True,
                requires_token_refresh=current.role_id is None,
            )

    if not memberships:
        logger.info("User %d has no active memberships", user_id, extra={"user_id": user_id})
        return BootstrapResult(
            tenants=[],
            active=None,
            requires_selection=False,
            message="user has no tenant memberships",
        )

    if len(memberships) == 1:
        only = memberships[0]
        if only.tenant is not None and only.tenant.is_switchable:
            logger.info(
                "Auto-selected tenant %d for user %d", only.tenant_id, user_id,
                extra={"user_id": user_id, "tenant_id": only.tenant_id, "role_id": only.role_id},
            )
            return BootstrapResult(
                tenants=memberships,
                active=SessionContext(user_id=user_id, tenant_id=only.tenant_id, role_id=only.role_id),
                requires_selection=False,
                auto_selected=True,
                requires_token_refresh=True,
            )
        return BootstrapResult(
            tenants=memberships,
            active=None,
            requires_selection=False,
            message="tenant is not active",
        )

    return BootstrapResult(
        tenants=memberships,
        active=None,
        requires_selection=True,
        message="multiple tenants available; select one",
    )
