"""
Membership Service — administrative writes on community membership.

Tenant administrators assign residents and staff to a community, change
their role, toggle their access and grant or revoke individual permissions.

None of these touch credentials. A resident holding a token issued before a
change keeps it; the change takes effect when the session validator next
re-reads the membership (every tenant-scoped request).
"""

import logging

from village_access.core.exceptions import ConflictError, NotFoundError, ValidationError
from village_access.models import db
from village_access.models.auth import Membership, Role, Tenant, User
from village_access.services.context_models import MembershipRecord, validate_permission_map
from village_access.services.membership_store import (
    MembershipStore,
    SqlAlchemyMembershipStore,
    membership_record,
)

logger = logging.getLogger(__name__)


def _store(store: MembershipStore | None) -> MembershipStore:
    return store if store is not None else SqlAlchemyMembershipStore()


def _get_membership_row(tenant_id: int, user_id: int) -> Membership:
    membership = Membership.query.filter_by(tenant_id=tenant_id, user_id=user_id).first()
    if membership is None:
        raise NotFoundError(resource="Membership", resource_id=user_id, tenant_id=tenant_id)
    return membership


def _active_role(role_id) -> Role:
    role = db.session.get(Role, role_id) if isinstance(role_id, int) else None
    if role is None or not role.is_active:
        raise ValidationError("Invalid role_id", details={"role_id": role_id})
    return role


def _validate_key(key) -> str:
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("permission key is required", details={"key": key})
    return key.strip()


# ═══════════════════════════════════════════════════════════════
# Assignment
# ═══════════════════════════════════════════════════════════════
def assign_user_to_tenant(
    user_id: int,
    tenant_id: int,
    role_id: int,
    permissions: dict | None = None,
    store: MembershipStore | None = None,
) -> MembershipRecord:
    """Grant ``user_id`` access to ``tenant_id`` under ``role_id``.

    ``permissions`` is the initial sparse override map. Duplicate
    assignment is checked here before the insert; the unique constraint on
    (user_id, tenant_id) backs it up.
    """
    store = _store(store)

    if db.session.get(Tenant, tenant_id) is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    if db.session.get(User, user_id) is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    _active_role(role_id)
    overrides = validate_permission_map(permissions)

    if store.get_membership(user_id, tenant_id) is not None:
        raise ConflictError("Membership", "user_id,tenant_id", f"{user_id},{tenant_id}")

    membership = store.add_membership(user_id, tenant_id, role_id, overrides)
    logger.info(
        "User %d assigned to tenant %d with role %d",
        user_id, tenant_id, role_id,
        extra={"user_id": user_id, "tenant_id": tenant_id, "role_id": role_id},
    )
    return membership


def get_tenant_members(tenant_id: int, include_inactive: bool = False) -> list[MembershipRecord]:
    """Memberships of a community, oldest first."""
    q = Membership.query.filter_by(tenant_id=tenant_id)
    if not include_inactive:
        q = q.filter(Membership.is_active.is_(True))
    rows = q.order_by(Membership.joined_at.asc(), Membership.id.asc()).all()
    return [membership_record(m) for m in rows]


# ═══════════════════════════════════════════════════════════════
# Activation
# ═══════════════════════════════════════════════════════════════
def deactivate_membership(tenant_id: int, user_id: int) -> MembershipRecord:
    """Soft-disable a membership. The row is kept for audit and reactivation."""
    membership = _get_membership_row(tenant_id, user_id)
    membership.is_active = False
    db.session.commit()
    logger.info(
        "Membership deactivated: user=%d tenant=%d", user_id, tenant_id,
        extra={"user_id": user_id, "tenant_id": tenant_id},
    )
    return membership_record(membership)


def reactivate_membership(tenant_id: int, user_id: int) -> MembershipRecord:
    membership = _get_membership_row(tenant_id, user_id)
    membership.is_active = True
    db.session.commit()
    logger.info(
        "Membership reactivated: user=%d tenant=%d", user_id, tenant_id,
        extra={"user_id": user_id, "tenant_id": tenant_id},
    )
    return membership_record(membership)


# ═══════════════════════════════════════════════════════════════
# Role & overrides
# ═══════════════════════════════════════════════════════════════
def change_role(tenant_id: int, user_id: int, role_id: int) -> MembershipRecord:
    """Move a member to another role.

    Outstanding credentials still name the old role; they are rejected as
    stale on their next use.
    """
    membership = _get_membership_row(tenant_id, user_id)
    role = _active_role(role_id)
    previous = membership.role_id
    membership.role_id = role.id
    db.session.commit()
    logger.info(
        "Membership role changed: user=%d tenant=%d role %d -> %d",
        user_id, tenant_id, previous, role.id,
        extra={"user_id": user_id, "tenant_id": tenant_id, "role_id": role.id},
    )
    return membership_record(membership)


def set_permission_override(tenant_id: int, user_id: int, key: str, allowed) -> MembershipRecord:
    """Pin one permission for one member regardless of the role default."""
    key = _validate_key(key)
    if not isinstance(allowed, bool):
        raise ValidationError("allowed must be true or false", details={"allowed": repr(allowed)})

    membership = _get_membership_row(tenant_id, user_id)
    overrides = dict(membership.permission_overrides or {})
    overrides[key] = allowed
    # Reassign so the JSON column is flagged dirty
    membership.permission_overrides = overrides
    db.session.commit()
    logger.info(
        "Permission override set: user=%d tenant=%d %s=%s",
        user_id, tenant_id, key, allowed,
        extra={"user_id": user_id, "tenant_id": tenant_id},
    )
    return membership_record(membership)


def clear_permission_override(tenant_id: int, user_id: int, key: str) -> MembershipRecord:
    """Drop an override so the role default applies again. No-op if absent."""
    key = _validate_key(key)
    membership = _get_membership_row(tenant_id, user_id)
    overrides = dict(membership.permission_overrides or {})
    if overrides.pop(key, None) is not None:
        membership.permission_overrides = overrides
        db.session.commit()
        logger.info(
            "Permission override cleared: user=%d tenant=%d key=%s",
            user_id, tenant_id, key,
            extra={"user_id": user_id, "tenant_id": tenant_id},
        )
    return membership_record(membership)
