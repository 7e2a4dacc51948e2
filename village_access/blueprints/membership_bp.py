"""
Membership Blueprint — community administrators manage their members.

  GET    /api/v1/tenants/<tid>/members                          — list members
  POST   /api/v1/tenants/<tid>/members                          — assign a user
  POST   /api/v1/tenants/<tid>/members/<uid>/deactivate
  POST   /api/v1/tenants/<tid>/members/<uid>/reactivate
  PUT    /api/v1/tenants/<tid>/members/<uid>/role               — change role
  PUT    /api/v1/tenants/<tid>/members/<uid>/permissions/<key>  — set override
  DELETE /api/v1/tenants/<tid>/members/<uid>/permissions/<key>  — clear override

Every route needs ``manage_users`` in the community named by the URL, which
must be the community of the caller's validated context. An administrator
can only act on roles ranked below their own.
"""

import logging

from flask import Blueprint, g, jsonify, request

from village_access.core.exceptions import ConflictError, NotFoundError
from village_access.middleware.permission_required import require_permission
from village_access.services import membership_service
from village_access.services.membership_store import SqlAlchemyMembershipStore
from village_access.services.permission_resolver import can_manage_role
from village_access.services.tenant_context_service import TenantContextService
from village_access.utils.errors import E, api_error

logger = logging.getLogger(__name__)

membership_bp = Blueprint(
    "membership_bp", __name__, url_prefix="/api/v1/tenants/<int:tenant_id>/members",
)


@membership_bp.before_request
def _same_tenant_only():
    tenant_id = (request.view_args or {}).get("tenant_id")
    context = getattr(g, "session_context", None)
    if context is not None and tenant_id != context.tenant_id:
        logger.warning(
            "Cross-tenant member access refused: user=%d context=%d path=%d",
            context.user_id, context.tenant_id, tenant_id,
            extra={"user_id": context.user_id, "tenant_id": context.tenant_id, "reason": "forbidden"},
        )
        return api_error(E.FORBIDDEN, "Tenant does not match the active context", details={"reason": "forbidden"})
    return None


def _outranks_role(role_id):
    """None if the caller may hand out ``role_id``, else an error response."""
    role = SqlAlchemyMembershipStore().get_role(role_id) if isinstance(role_id, int) else None
    if role is None:
        return None  # the service rejects it as an invalid role_id
    if not can_manage_role(g.tenant_membership.role, role):
        return api_error(E.FORBIDDEN, "Cannot grant a role at or above your own", details={"reason": "forbidden"})
    return None


def _outranks_member(tenant_id, user_id):
    target = SqlAlchemyMembershipStore().get_membership(user_id, tenant_id)
    if target is None:
        raise NotFoundError(resource="Membership", resource_id=user_id, tenant_id=tenant_id)
    if not TenantContextService().can_manage(g.tenant_membership, target):
        return api_error(E.FORBIDDEN, "Cannot manage a member at or above your own role", details={"reason": "forbidden"})
    return None


# ═══════════════════════════════════════════════════════════════
# List / assign
# ═══════════════════════════════════════════════════════════════
@membership_bp.route("", methods=["GET"])
@require_permission("manage_users")
def list_members(tenant_id):
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    members = membership_service.get_tenant_members(tenant_id, include_inactive=include_inactive)
    return jsonify({"items": [m.to_tenant_info() | {"user_id": m.user_id} for m in members]}), 200


@membership_bp.route("", methods=["POST"])
@require_permission("manage_users")
def assign_member(tenant_id):
    """
    Body: { "user_id": 7, "role_id": 5, "permissions": {"manage_visitors": false} }
    """
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    role_id = data.get("role_id")
    if user_id is None or role_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id and role_id are required")

    err = _outranks_role(role_id)
    if err:
        return err

    try:
        membership = membership_service.assign_user_to_tenant(
            user_id, tenant_id, role_id, data.get("permissions"),
        )
    except ConflictError:
        return api_error(E.CONFLICT_DUPLICATE, "User is already assigned to this tenant")
    return jsonify(membership.to_tenant_info() | {"user_id": membership.user_id}), 201


# ═══════════════════════════════════════════════════════════════
# Activation
# ═══════════════════════════════════════════════════════════════
@membership_bp.route("/<int:user_id>/deactivate", methods=["POST"])
@require_permission("manage_users")
def deactivate_member(tenant_id, user_id):
    err = _outranks_member(tenant_id, user_id)
    if err:
        return err
    membership = membership_service.deactivate_membership(tenant_id, user_id)
    return jsonify(membership.to_tenant_info()), 200


@membership_bp.route("/<int:user_id>/reactivate", methods=["POST"])
@require_permission("manage_users")
def reactivate_member(tenant_id, user_id):
    err = _outranks_member(tenant_id, user_id)
    if err:
        return err
    membership = membership_service.reactivate_membership(tenant_id, user_id)
    return jsonify(membership.to_tenant_info()), 200


# ═══════════════════════════════════════════════════════════════
# Role & overrides
# ═══════════════════════════════════════════════════════════════
@membership_bp.route("/<int:user_id>/role", methods=["PUT"])
@require_permission("manage_users")
def change_member_role(tenant_id, user_id):
    """Body: { "role_id": 5 }"""
    data = request.get_json(silent=True) or {}
    role_id = data.get("role_id")
    if role_id is None:
        return api_error(E.VALIDATION_REQUIRED, "role_id is required")

    err = _outranks_member(tenant_id, user_id) or _outranks_role(role_id)
    if err:
        return err
    membership = membership_service.change_role(tenant_id, user_id, role_id)
    return jsonify(membership.to_tenant_info()), 200


@membership_bp.route("/<int:user_id>/permissions/<key>", methods=["PUT"])
@require_permission("manage_users")
def set_override(tenant_id, user_id, key):
    """Body: { "allowed": false }"""
    data = request.get_json(silent=True) or {}
    if "allowed" not in data:
        return api_error(E.VALIDATION_REQUIRED, "allowed is required")

    err = _outranks_member(tenant_id, user_id)
    if err:
        return err
    membership = membership_service.set_permission_override(tenant_id, user_id, key, data["allowed"])
    return jsonify({"permission_overrides": dict(membership.permission_overrides)}), 200


@membership_bp.route("/<int:user_id>/permissions/<key>", methods=["DELETE"])
@require_permission("manage_users")
def clear_override(tenant_id, user_id, key):
    err = _outranks_member(tenant_id, user_id)
    if err:
        return err
    membership = membership_service.clear_permission_override(tenant_id, user_id, key)
    return jsonify({"permission_overrides": dict(membership.permission_overrides)}), 200
