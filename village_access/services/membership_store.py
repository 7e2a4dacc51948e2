"""
Membership Store — the engine's narrow view of durable membership/role state.

The engine depends only on ``MembershipStore``. Every read reflects the latest
committed state: nothing here caches, because a stale membership is a
security defect (a deactivated resident must lose access on the next request).

Store faults (connection loss, statement timeout) are SQLAlchemy exceptions
and propagate unchanged to the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from village_access.core.exceptions import ConflictError
from village_access.models import db
from village_access.models.auth import Membership, Role, Tenant
from village_access.services.context_models import (
    MembershipRecord,
    RoleRecord,
    TenantRecord,
)

logger = logging.getLogger(__name__)


class MembershipStore(ABC):
    """Read (and checked-insert) interface over memberships, roles and tenants."""

    @abstractmethod
    def get_membership(self, user_id: int, tenant_id: int) -> MembershipRecord | None:
        """Return the (user, tenant) membership joined with tenant and role, or None."""

    @abstractmethod
    def list_memberships(self, user_id: int, *, active_only: bool = True) -> list[MembershipRecord]:
        """Return the user's memberships ordered by join time, then id."""

    @abstractmethod
    def get_role(self, role_id: int) -> RoleRecord | None:
        ...

    @abstractmethod
    def get_tenant(self, tenant_id: int) -> TenantRecord | None:
        ...

    @abstractmethod
    def add_membership(
        self,
        user_id: int,
        tenant_id: int,
        role_id: int,
        permission_overrides: dict[str, bool] | None = None,
    ) -> MembershipRecord:
        """Insert a membership. Callers check uniqueness first; the store enforces it.

        Raises ConflictError when the (user, tenant) pair already exists.
        """


# ═══════════════════════════════════════════════════════════════
# Row → record conversion
# ═══════════════════════════════════════════════════════════════
def tenant_record(tenant: Tenant | None) -> TenantRecord | None:
    if tenant is None:
        return None
    return TenantRecord(id=tenant.id, name=tenant.name, slug=tenant.slug, status=tenant.status)


def role_record(role: Role | None) -> RoleRecord | None:
    if role is None:
        return None
    return RoleRecord(
        id=role.id,
        code=role.code,
        name=role.name,
        hierarchy_level=role.hierarchy_level,
        scope=role.scope,
        permissions=role.permissions or {},
        is_active=bool(role.is_active),
    )


def membership_record(membership: Membership | None) -> MembershipRecord | None:
    if membership is None:
        return None
    return MembershipRecord(
        id=membership.id,
        tenant_id=membership.tenant_id,
        user_id=membership.user_id,
        role_id=membership.role_id,
        is_active=bool(membership.is_active),
        permission_overrides=membership.permission_overrides or {},
        joined_at=membership.joined_at,
        tenant=tenant_record(membership.tenant),
        role=role_record(membership.role),
    )


# ═══════════════════════════════════════════════════════════════
# SQLAlchemy implementation
# ═══════════════════════════════════════════════════════════════
class SqlAlchemyMembershipStore(MembershipStore):
    """MembershipStore over the Flask-SQLAlchemy session.

    Each read expires the identity map entries it touches (``populate_existing``)
    so a long-lived request session never serves a row an administrator
    changed after it was first loaded.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _membership_query(self):
        return (
            self.session.query(Membership)
            .options(joinedload(Membership.tenant), joinedload(Membership.role))
            .populate_existing()
        )

    def get_membership(self, user_id: int, tenant_id: int) -> MembershipRecord | None:
        row = (
            self._membership_query()
            .filter(Membership.user_id == user_id, Membership.tenant_id == tenant_id)
            .one_or_none()
        )
        return membership_record(row)

    def list_memberships(self, user_id: int, *, active_only: bool = True) -> list[MembershipRecord]:
        query = self._membership_query().filter(Membership.user_id == user_id)
        if active_only:
            query = query.filter(Membership.is_active.is_(True))
        rows = query.order_by(Membership.joined_at.asc(), Membership.id.asc()).all()
        return [membership_record(r) for r in rows]

    def get_role(self, role_id: int) -> RoleRecord | None:
        return role_record(
            self.session.get(Role, role_id, populate_existing=True)
        )

    def get_tenant(self, tenant_id: int) -> TenantRecord | None:
        return tenant_record(
            self.session.get(Tenant, tenant_id, populate_existing=True)
        )

    def add_membership(
        self,
        user_id: int,
        tenant_id: int,
        role_id: int,
        permission_overrides: dict[str, bool] | None = None,
    ) -> MembershipRecord:
        membership = Membership(
            user_id=user_id,
            tenant_id=tenant_id,
            role_id=role_id,
            is_active=True,
            permission_overrides=dict(permission_overrides or {}),
        )
        self.session.add(membership)
        try:
            self.session.commit()
        except IntegrityError as exc:
            # A concurrent assignment inserted the same (user, tenant) first
            self.session.rollback()
            logger.warning(
                "Membership insert rejected: user=%d tenant=%d: %s",
                user_id, tenant_id, exc.orig,
                extra={"user_id": user_id, "tenant_id": tenant_id},
            )
            raise ConflictError("Membership", "user_id,tenant_id", f"{user_id},{tenant_id}") from exc
        logger.info(
            "Membership %d created: user=%d tenant=%d role=%d",
            membership.id, user_id, tenant_id, role_id,
        )
        return self.get_membership(user_id, tenant_id)
