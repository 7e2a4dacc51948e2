"""
Seed Roles — built-in community roles, plus an optional demo community.

Usage:
    python scripts/seed_roles.py                    # Uses development DB
    python scripts/seed_roles.py --env production   # Uses production DB
    python scripts/seed_roles.py --demo             # Also a demo community + admin

This script is idempotent — safe to run multiple times.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from village_access import create_app
from village_access.models import db
from village_access.models.auth import Membership, Role, Tenant, User
from village_access.services.membership_service import assign_user_to_tenant
from village_access.services.role_catalog import ROLES, seed_roles
from village_access.services.tenant_service import create_tenant, get_tenant_by_slug
from village_access.services.user_service import create_user, get_user_by_email

DEMO_TENANT_SLUG = "green-valley"
DEMO_ADMIN_EMAIL = "admin@greenvalley.io"
DEMO_ADMIN_PASSWORD = "ChangeMe2026!"


def seed_demo():
    """Create an active demo community with one admin-head member."""
    tenant = get_tenant_by_slug(DEMO_TENANT_SLUG)
    if tenant is None:
        tenant = create_tenant("Green Valley Residences", DEMO_TENANT_SLUG, status="active")
        print(f"  Tenant: created (id={tenant.id}, slug={tenant.slug})")
    else:
        print(f"  Tenant: already exists (id={tenant.id})")

    user = get_user_by_email(DEMO_ADMIN_EMAIL)
    if user is None:
        user = create_user(DEMO_ADMIN_EMAIL, DEMO_ADMIN_PASSWORD, full_name="Community Admin")
        print(f"  Admin: created (id={user.id}, email={DEMO_ADMIN_EMAIL}, password={DEMO_ADMIN_PASSWORD})")

    if not Membership.query.filter_by(user_id=user.id, tenant_id=tenant.id).first():
        role = Role.query.filter_by(code="admin-head").first()
        assign_user_to_tenant(user.id, tenant.id, role.id)
        print("  Admin membership: created")


def main():
    parser = argparse.ArgumentParser(description="Seed built-in roles and an optional demo community")
    parser.add_argument("--env", default="development", help="App environment")
    parser.add_argument("--demo", action="store_true", help="Also create a demo community and admin")
    args = parser.parse_args()

    app = create_app(args.env)

    with app.app_context():
        db.create_all()
        print("=" * 60)
        print("  SEED: Roles")
        print("=" * 60)

        created, updated = seed_roles()
        print(f"  Roles: {created} created, {updated} updated")

        if args.demo:
            print("\nSeeding demo community...")
            seed_demo()

        print("\n" + "=" * 60)
        print("  SUMMARY")
        print("=" * 60)
        print(f"  Roles:       {Role.query.count()}")
        print(f"  Tenants:     {Tenant.query.count()}")
        print(f"  Users:       {User.query.count()}")
        print(f"  Memberships: {Membership.query.count()}")

        print("\nRole → default permissions:")
        for code in ROLES:
            role = Role.query.filter_by(code=code).first()
            granted = sorted(k for k, v in (role.permissions or {}).items() if v)
            print(f"  {role.name:26s} ({code:18s}) L{role.hierarchy_level:<3d} {', '.join(granted)}")

        print("\nSeed complete.")


if __name__ == "__main__":
    main()
