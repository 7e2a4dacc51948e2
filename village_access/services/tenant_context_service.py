"""
Tenant Context Service — the engine's exposed surface.

Transport wrappers (blueprints, CLI, workers) call this facade and nothing
below it:

    bootstrap(user_id)                     login-time context decision
    switch_tenant(user_id, tenant_id)      may the user move to tenant_id?
    switch_and_refresh(...)                switch, then re-issue the credential
    validate_session(claims)               gate for every tenant-scoped request
    check_permission(membership, key)
    check_permissions(membership, keys)
    get_permissions(membership)            effective map with provenance
    list_accessible_tenants(user_id)

The service is stateless: it holds a store handle and nothing else. Each
call reads live state through the store.
"""

import logging
from abc import ABC, abstractmethod

from village_access.core.exceptions import CredentialRefreshError
from village_access.services import context_bootstrap, permission_resolver
from village_access.services.context_models import (
    BootstrapResult,
    EffectivePermissionSet,
    MembershipRecord,
    SessionContext,
    SwitchResult,
    ValidationResult,
)
from village_access.services.membership_store import MembershipStore, SqlAlchemyMembershipStore
from village_access.services.session_validator import validate_session
from village_access.services.tenant_switcher import switch_tenant

logger = logging.getLogger(__name__)


class CredentialIssuer(ABC):
    """Embeds a SessionContext into a fresh credential."""

    @abstractmethod
    def issue(self, context: SessionContext) -> dict:
        """Return the new credential (token pair). Raise on failure."""


class TenantContextService:
    def __init__(self, store: MembershipStore | None = None):
        self.store = store if store is not None else SqlAlchemyMembershipStore()

    # ── Context lifecycle ────────────────────────────────────────────────

    def bootstrap(self, user_id: int, current: SessionContext | None = None) -> BootstrapResult:
        return context_bootstrap.bootstrap(self.store, user_id, current)

    def start_session(
        self,
        user_id: int,
        issuer: CredentialIssuer,
        current: SessionContext | None = None,
    ) -> tuple[BootstrapResult, dict]:
        """Bootstrap and issue the first credential.

        When no tenant is selected the credential carries no tenant claims;
        tenant-scoped requests are refused until the user switches.
        """
        result = self.bootstrap(user_id, current)
        context = result.active or SessionContext(user_id=user_id)
        return result, issuer.issue(context)

    def switch_tenant(self, user_id: int, tenant_id: int) -> SwitchResult:
        return switch_tenant(self.store, user_id, tenant_id)

    def switch_and_refresh(
        self,
        user_id: int,
        tenant_id: int,
        issuer: CredentialIssuer,
    ) -> tuple[SwitchResult, dict | None]:
        """Switch, then re-issue the credential as a separate step.

        Returns ``(result, None)`` when the switch is refused. Raises
        CredentialRefreshError when the switch succeeded but the issuer
        failed, so the caller never assumes it moved tenants while its live
        credential is unchanged.
        """
        result = self.switch_tenant(user_id, tenant_id)
        if not result.success:
            return result, None

        context = SessionContext(user_id=user_id, tenant_id=result.tenant_id, role_id=result.role_id)
        try:
            tokens = issuer.issue(context)
        except Exception as exc:
            logger.error(
                "Credential refresh failed after switch: user=%d tenant=%d: %s",
                user_id, tenant_id, exc,
                extra={"user_id": user_id, "tenant_id": tenant_id},
            )
            raise CredentialRefreshError(result, exc) from exc
        return result, tokens

    def validate_session(self, claims) -> ValidationResult:
        return validate_session(self.store, claims)

    def list_accessible_tenants(self, user_id: int) -> list[MembershipRecord]:
        return context_bootstrap.list_accessible_tenants(self.store, user_id)

    # ── Permissions ──────────────────────────────────────────────────────

    def check_permission(self, membership: MembershipRecord, key: str) -> bool:
        return permission_resolver.check(membership, key)

    def check_permissions(self, membership: MembershipRecord, keys: list[str]) -> dict[str, bool]:
        return permission_resolver.check_many(membership, keys)

    def get_permissions(self, membership: MembershipRecord) -> EffectivePermissionSet:
        return permission_resolver.resolve_with_provenance(membership)

    def can_manage(self, actor: MembershipRecord, target: MembershipRecord) -> bool:
        """Hierarchy check between two memberships of the same tenant."""
        if actor.tenant_id != target.tenant_id or actor.role is None or target.role is None:
            return False
        return permission_resolver.can_manage_role(actor.role, target.role)
