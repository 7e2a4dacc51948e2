"""
Tenant context data model — records, session context and engine results.

The engine never hands ORM instances across its boundary. The store adapter
converts rows into the frozen records below, so every decision is taken on a
snapshot that later admin writes cannot change underneath it.

Failure taxonomy (FailureReason):
  not_found      referenced tenant, role or membership does not exist
  inactive       membership or tenant exists but is disabled/suspended
  forbidden      membership exists but lacks the permission
  stale_context  credential claims no longer match live state
  no_context     credential carries no tenant claim
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from village_access.core.exceptions import ValidationError


# ═════════════════════════════════════════════════════════════════════════════
# Enums & status policy
# ═════════════════════════════════════════════════════════════════════════════

class FailureReason(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    FORBIDDEN = "forbidden"
    STALE_CONTEXT = "stale_context"
    NO_CONTEXT = "no_context"


class Provenance(str, Enum):
    """Where an effective permission value came from."""
    DEFAULT = "default"
    OVERRIDE = "override"


# A credential pointing at these tenants still validates.
OPERABLE_TENANT_STATUSES = frozenset({"active", "trial"})
# Only these may be switched into or auto-selected at login.
SWITCHABLE_TENANT_STATUSES = frozenset({"active"})

_SLUG_RE = re.compile(r"^[a-z0-9-]{2,100}$")


def is_operable(status: str | None) -> bool:
    return status in OPERABLE_TENANT_STATUSES


def is_switchable(status: str | None) -> bool:
    return status in SWITCHABLE_TENANT_STATUSES


def validate_slug(slug: str) -> str:
    """Return the slug if it is URL-safe, else raise ValidationError."""
    if not isinstance(slug, str) or not _SLUG_RE.match(slug):
        raise ValidationError(
            "Slug must contain only lowercase letters, numbers, and hyphens (2-100 chars)",
            details={"slug": slug},
        )
    return slug


def validate_permission_map(permissions: Any, *, field_name: str = "permissions") -> dict[str, bool]:
    """Check a permission map is ``{str: bool}`` and return a plain copy.

    Truthy non-bool values are rejected rather than coerced: an override of
    ``"false"`` must never grant.
    """
    if permissions is None:
        return {}
    if not isinstance(permissions, dict):
        raise ValidationError(f"{field_name} must be an object", details={field_name: type(permissions).__name__})
    bad = {
        str(k): repr(v)
        for k, v in permissions.items()
        if not isinstance(k, str) or not k or not isinstance(v, bool)
    }
    if bad:
        raise ValidationError(f"{field_name} must map permission keys to true/false", details=bad)
    return dict(permissions)


# ═════════════════════════════════════════════════════════════════════════════
# Store records
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TenantRecord:
    id: int
    name: str
    slug: str
    status: str

    @property
    def is_operable(self) -> bool:
        return is_operable(self.status)

    @property
    def is_switchable(self) -> bool:
        return is_switchable(self.status)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "slug": self.slug, "status": self.status}


@dataclass(frozen=True)
class RoleRecord:
    id: int
    code: str
    name: str
    hierarchy_level: int
    scope: str
    permissions: Mapping[str, bool] = field(default_factory=dict)
    is_active: bool = True

    def __post_init__(self):
        # Read-only copy, detached from the caller's dict
        object.__setattr__(self, "permissions", MappingProxyType(dict(self.permissions or {})))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "hierarchy_level": self.hierarchy_level,
            "scope": self.scope,
        }


@dataclass(frozen=True)
class MembershipRecord:
    """One user's membership in one tenant, joined with tenant and role."""
    id: int
    tenant_id: int
    user_id: int
    role_id: int
    is_active: bool
    permission_overrides: Mapping[str, bool] = field(default_factory=dict)
    joined_at: datetime | None = None
    tenant: TenantRecord | None = None
    role: RoleRecord | None = None

    def __post_init__(self):
        object.__setattr__(
            self, "permission_overrides", MappingProxyType(dict(self.permission_overrides or {}))
        )

    def to_tenant_info(self) -> dict:
        """Flat row used by tenant listings and bootstrap responses."""
        return {
            "membership_id": self.id,
            "tenant_id": self.tenant_id,
            "tenant_name": self.tenant.name if self.tenant else None,
            "tenant_slug": self.tenant.slug if self.tenant else None,
            "tenant_status": self.tenant.status if self.tenant else None,
            "role_id": self.role_id,
            "role_code": self.role.code if self.role else None,
            "role_name": self.role.name if self.role else None,
            "is_active": self.is_active,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Session context
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SessionContext:
    """The (tenant, role) a credential operates under. Immutable.

    Switching produces a new SessionContext; it must be re-embedded in a new
    credential before it takes effect.
    """
    user_id: int
    tenant_id: int | None = None
    role_id: int | None = None

    @property
    def has_tenant(self) -> bool:
        return self.tenant_id is not None

    @classmethod
    def from_claims(cls, claims: dict) -> "SessionContext":
        """Build a context from decoded credential claims (``sub``/``user_id``)."""
        user_id = claims.get("user_id", claims.get("sub"))
        if user_id is None:
            raise ValidationError("claims must carry a user id", details={"claims": sorted(claims)})
        return cls(
            user_id=_as_int(user_id),
            tenant_id=_as_int(claims.get("tenant_id")),
            role_id=_as_int(claims.get("role_id")),
        )

    def with_tenant(self, tenant_id: int, role_id: int) -> "SessionContext":
        return SessionContext(user_id=self.user_id, tenant_id=tenant_id, role_id=role_id)

    def cleared(self) -> "SessionContext":
        return SessionContext(user_id=self.user_id)

    def to_claims(self) -> dict:
        """Claims the credential issuer must embed on refresh."""
        claims: dict[str, Any] = {}
        if self.tenant_id is not None:
            claims["tenant_id"] = self.tenant_id
        if self.role_id is not None:
            claims["role_id"] = self.role_id
        return claims


def _as_int(value):
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("claim ids must be integers", details={"value": repr(value)})
    if value is None or isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("claim ids must be integers", details={"value": repr(value)})


# ═════════════════════════════════════════════════════════════════════════════
# Engine results
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class BootstrapResult:
    """Outcome of the login-time context decision."""
    tenants: list[MembershipRecord]
    active: SessionContext | None
    requires_selection: bool
    auto_selected: bool = False
    has_context: bool = False
    requires_token_refresh: bool = False
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "tenants": [m.to_tenant_info() for m in self.tenants],
            "active": self.active.to_claims() if self.active else None,
            "requires_selection": self.requires_selection,
            "auto_selected": self.auto_selected,
            "has_context": self.has_context,
            "requires_token_refresh": self.requires_token_refresh,
            "message": self.message,
        }


@dataclass
class SwitchResult:
    success: bool
    tenant_id: int | None = None
    role_id: int | None = None
    role_code: str | None = None
    error: str | None = None
    reason: FailureReason | None = None

    @classmethod
    def failed(cls, reason: FailureReason, error: str, tenant_id: int | None = None) -> "SwitchResult":
        return cls(success=False, tenant_id=tenant_id, error=error, reason=reason)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"success": self.success}
        if self.success:
            d.update(tenant_id=self.tenant_id, role_id=self.role_id, role_code=self.role_code)
        else:
            d.update(error=self.error, reason=self.reason.value if self.reason else None)
        return d


@dataclass
class ValidationResult:
    valid: bool
    tenant: TenantRecord | None = None
    role: RoleRecord | None = None
    membership: MembershipRecord | None = None
    reason: FailureReason | None = None
    error: str | None = None

    @property
    def requires_reauthentication(self) -> bool:
        """A credential that named a tenant but no longer matches live state.

        Forces a full login rather than a token refresh: it may indicate
        tampering or a race with an administrative revocation.
        """
        return not self.valid and self.reason not in (None, FailureReason.NO_CONTEXT)

    @classmethod
    def failed(cls, reason: FailureReason, error: str) -> "ValidationResult":
        return cls(valid=False, reason=reason, error=error)

    def to_dict(self) -> dict:
        if not self.valid:
            return {
                "valid": False,
                "reason": self.reason.value if self.reason else None,
                "error": self.error,
                "requires_reauthentication": self.requires_reauthentication,
            }
        return {
            "valid": True,
            "tenant": self.tenant.to_dict() if self.tenant else None,
            "role": self.role.to_dict() if self.role else None,
            "membership_id": self.membership.id if self.membership else None,
        }


@dataclass(frozen=True)
class PermissionEntry:
    key: str
    allowed: bool
    provenance: Provenance
    role_default: bool | None = None  # None when the role does not list the key

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "allowed": self.allowed,
            "provenance": self.provenance.value,
            "role_default": self.role_default,
        }


@dataclass(frozen=True)
class EffectivePermissionSet:
    """Role defaults merged with membership overrides. Ephemeral, never persisted."""
    membership_id: int
    role_code: str | None
    entries: dict[str, PermissionEntry]

    def get(self, key: str) -> bool:
        entry = self.entries.get(key)
        return entry.allowed if entry is not None else False

    def as_map(self) -> dict[str, bool]:
        return {k: e.allowed for k, e in self.entries.items()}

    def overridden_keys(self) -> list[str]:
        return sorted(k for k, e in self.entries.items() if e.provenance is Provenance.OVERRIDE)

    def to_dict(self) -> dict:
        return {
            "membership_id": self.membership_id,
            "role_code": self.role_code,
            "permissions": self.as_map(),
            "entries": [self.entries[k].to_dict() for k in sorted(self.entries)],
        }
