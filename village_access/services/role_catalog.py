"""
Role Catalog — built-in community roles and their default permissions.

hierarchy_level orders roles for "who may manage whom" (lower = more
privileged). It is never used to answer permission checks; those read the
``permissions`` map and the membership overrides only.
"""

import logging

from village_access.models import db
from village_access.models.auth import Role

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# PERMISSION KEYS
# ═══════════════════════════════════════════════════════════════
PERMISSION_KEYS = (
    "manage_users",       # assign members, change roles and overrides
    "manage_household",   # edit household records
    "manage_visitors",    # register and approve visitors
    "view_gate_logs",
    "view_reports",
)


# ═══════════════════════════════════════════════════════════════
# ROLES
# ═══════════════════════════════════════════════════════════════
ROLES = {
    "superadmin": {
        "name": "Super Administrator",
        "description": "Platform operator with full access to every community",
        "hierarchy_level": 0,
        "scope": "platform",
        "permissions": {k: True for k in PERMISSION_KEYS},
    },
    "admin-head": {
        "name": "Community Administrator",
        "description": "Runs one community: members, households, reports",
        "hierarchy_level": 10,
        "scope": "tenant",
        "permissions": {k: True for k in PERMISSION_KEYS},
    },
    "security-officer": {
        "name": "Security Officer",
        "description": "Gate staff: visitors and gate logs",
        "hierarchy_level": 20,
        "scope": "security",
        "permissions": {
            "manage_users": False,
            "manage_household": False,
            "manage_visitors": True,
            "view_gate_logs": True,
            "view_reports": False,
        },
    },
    "household-head": {
        "name": "Household Head",
        "description": "Primary resident of a household",
        "hierarchy_level": 20,
        "scope": "household",
        "permissions": {
            "manage_users": False,
            "manage_household": True,
            "manage_visitors": True,
            "view_gate_logs": False,
            "view_reports": False,
        },
    },
    "household-member": {
        "name": "Household Member",
        "description": "Resident living in a household",
        "hierarchy_level": 30,
        "scope": "household",
        "permissions": {
            "manage_users": False,
            "manage_household": False,
            "manage_visitors": True,
            "view_gate_logs": False,
            "view_reports": False,
        },
    },
}


def seed_roles() -> tuple[int, int]:
    """Create or update the built-in roles. Idempotent.

    Returns:
        (created, updated) counts.
    """
    created = updated = 0
    for code, cfg in ROLES.items():
        role = Role.query.filter_by(code=code).first()
        if role is None:
            db.session.add(Role(code=code, is_active=True, **{**cfg, "permissions": dict(cfg["permissions"])}))
            created += 1
            continue
        role.name = cfg["name"]
        role.description = cfg["description"]
        role.hierarchy_level = cfg["hierarchy_level"]
        role.scope = cfg["scope"]
        role.permissions = dict(cfg["permissions"])
        updated += 1
    db.session.commit()
    logger.info("Roles seeded: %d created, %d updated", created, updated)
    return created, updated
