"""
Auth Models — tenants, users, roles, memberships, sessions.

A user account is not bound to a single tenant. Access to a residential
community is granted through a Membership row, which carries the role held in
that community and a sparse map of per-user permission overrides.

Tenant and Role rows are owned by the platform administrator. Membership rows
are owned by tenant administrators (role and override changes).
"""

import uuid
from datetime import datetime, timezone

from village_access.models import db


TENANT_STATUSES = ("active", "trial", "suspended", "cancelled", "inactive")
ROLE_SCOPES = ("platform", "tenant", "household", "security")


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="trial")  # see TENANT_STATUSES
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('active', 'trial', 'suspended', 'cancelled', 'inactive')",
            name="ck_tenant_status",
        ),
    )

    # Relationships
    memberships = db.relationship("Membership", back_populates="tenant", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "status": self.status,
            "settings": self.settings or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    full_name = db.Column(db.String(200))
    status = db.Column(db.String(20), default="active")  # active, inactive, suspended
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    memberships = db.relationship(
        "Membership", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )
    sessions = db.relationship("Session", back_populates="user", lazy="dynamic", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "status": self.status,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 3. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(100), unique=True, nullable=False)  # e.g. "admin-head"
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    hierarchy_level = db.Column(db.Integer, nullable=False)  # lower = more privileged
    scope = db.Column(db.String(20), nullable=False, default="tenant")  # see ROLE_SCOPES
    permissions = db.Column(db.JSON, default=dict)  # default permission map: key -> bool
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "scope IN ('platform', 'tenant', 'household', 'security')",
            name="ck_role_scope",
        ),
    )

    # Relationships
    memberships = db.relationship("Membership", back_populates="role", lazy="dynamic")

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "hierarchy_level": self.hierarchy_level,
            "scope": self.scope,
            "is_active": self.is_active,
        }
        if include_permissions:
            d["permissions"] = dict(self.permissions or {})
        return d


# ═══════════════════════════════════════════════════════════════
# 4. MEMBERSHIPS (User ↔ Tenant, with role and overrides)
# ═══════════════════════════════════════════════════════════════
class Membership(db.Model):
    __tablename__ = "memberships"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    # Sparse: only overridden keys are present
    permission_overrides = db.Column(db.JSON, default=dict)
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # One membership per (user, tenant)
    __table_args__ = (
        db.UniqueConstraint("user_id", "tenant_id", name="uq_membership_user_tenant"),
        db.Index("ix_memberships_user_id", "user_id"),
        db.Index("ix_memberships_tenant_id", "tenant_id"),
    )

    # Relationships
    tenant = db.relationship("Tenant", back_populates="memberships")
    user = db.relationship("User", back_populates="memberships")
    role = db.relationship("Role", back_populates="memberships")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "role_id": self.role_id,
            "is_active": self.is_active,
            "permission_overrides": dict(self.permission_overrides or {}),
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 5. SESSIONS (Refresh tokens & login tracking)
# ═══════════════════════════════════════════════════════════════
class Session(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash = db.Column(db.String(256), nullable=False)  # SHA-256 of refresh token
    # Context last embedded for this session; re-validated on every refresh
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True
    )
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    expires_at = db.Column(db.DateTime, nullable=False)
    last_used_at = db.Column(db.DateTime)

    # Relationships
    user = db.relationship("User", back_populates="sessions")

    @property
    def is_expired(self):
        return datetime.now(timezone.utc) > self.expires_at.replace(tzinfo=timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "role_id": self.role_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }
