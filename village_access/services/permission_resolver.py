"""
Permission Resolver — role defaults merged with per-membership overrides.

Evaluation is deterministic and deny-by-default:
  - start from the role's default permission map (unlisted keys are False)
  - every key in the membership's override map replaces the default,
    in both directions (an override can grant or revoke)
  - hierarchy_level is never consulted here; it answers "who out-ranks whom",
    not "who may do what"

All functions are pure: they read the MembershipRecord snapshot they are
given and never touch the store.
"""

from village_access.services.context_models import (
    EffectivePermissionSet,
    MembershipRecord,
    PermissionEntry,
    Provenance,
    RoleRecord,
)


def _role_defaults(membership: MembershipRecord) -> dict[str, bool]:
    if membership.role is None:
        return {}
    return dict(membership.role.permissions)


def resolve_with_provenance(membership: MembershipRecord) -> EffectivePermissionSet:
    """Merge role defaults and overrides, tagging each key with its source."""
    defaults = _role_defaults(membership)
    entries: dict[str, PermissionEntry] = {
        key: PermissionEntry(key=key, allowed=bool(value), provenance=Provenance.DEFAULT, role_default=bool(value))
        for key, value in defaults.items()
    }
    for key, value in membership.permission_overrides.items():
        entries[key] = PermissionEntry(
            key=key,
            allowed=bool(value),
            provenance=Provenance.OVERRIDE,
            role_default=defaults.get(key),
        )
    return EffectivePermissionSet(
        membership_id=membership.id,
        role_code=membership.role.code if membership.role else None,
        entries=entries,
    )


def resolve(membership: MembershipRecord) -> dict[str, bool]:
    """Effective permission map for a membership."""
    return resolve_with_provenance(membership).as_map()


def check(membership: MembershipRecord, key: str) -> bool:
    """True iff the effective map grants ``key``. Unknown keys are denied."""
    return resolve(membership).get(key, False)


def check_many(membership: MembershipRecord, keys: list[str]) -> dict[str, bool]:
    """Check several keys against one resolved snapshot.

    Duplicate keys collapse; the result preserves first-seen order.
    """
    snapshot = resolve(membership)
    return {key: snapshot.get(key, False) for key in keys}


def can_manage_role(actor_role: RoleRecord, target_role: RoleRecord) -> bool:
    """Hierarchy comparison: strictly lower level out-ranks.

    Equal levels do not manage each other, so a tenant admin cannot demote
    another tenant admin.
    """
    return actor_role.hierarchy_level < target_role.hierarchy_level
