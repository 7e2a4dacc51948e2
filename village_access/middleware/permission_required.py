"""
Permission Decorators — membership-aware permission checks for routes.

Usage:
    @bp.route("/api/v1/tenants/<int:tenant_id>/members", methods=["POST"])
    @require_permission("manage_users")
    def assign_member(tenant_id):
        ...

    @bp.route("/api/v1/gate-logs", methods=["GET"])
    @require_any_permission("view_gate_logs", "view_reports")
    def list_gate_logs():
        ...

The decorators read the membership validated by the tenant context
middleware (g.tenant_membership) and resolve role defaults plus overrides on
every call. A request that reached the handler without a validated context
is refused with ERR_NO_CONTEXT.
"""

import functools
import logging

from flask import g

from village_access.services import permission_resolver
from village_access.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _denied(f, required, detail_key):
    membership = g.tenant_membership
    logger.warning(
        "User %d denied on %s: missing %s",
        membership.user_id, f.__name__, required,
        extra={
            "user_id": membership.user_id,
            "tenant_id": membership.tenant_id,
            "role_id": membership.role_id,
            "reason": "forbidden",
        },
    )
    return api_error(
        E.FORBIDDEN,
        "Permission denied",
        details={"reason": "forbidden", detail_key: required},
    )


def _no_context():
    return api_error(E.NO_CONTEXT, "no tenant context established", details={"reason": "no_context"})


def require_permission(key: str):
    """
    Decorator: require the current membership to hold one permission.

    Args:
        key: Permission key, e.g. "manage_users"
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            membership = getattr(g, "tenant_membership", None)
            if membership is None:
                return _no_context()
            if not permission_resolver.check(membership, key):
                return _denied(f, key, "required")
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_any_permission(*keys: str):
    """
    Decorator: require at least ONE of the listed permissions.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            membership = getattr(g, "tenant_membership", None)
            if membership is None:
                return _no_context()
            if not any(permission_resolver.check_many(membership, list(keys)).values()):
                return _denied(f, list(keys), "required_any")
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_all_permissions(*keys: str):
    """
    Decorator: require ALL of the listed permissions.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            membership = getattr(g, "tenant_membership", None)
            if membership is None:
                return _no_context()
            if not all(permission_resolver.check_many(membership, list(keys)).values()):
                return _denied(f, list(keys), "required_all")
            return f(*args, **kwargs)
        return decorated
    return decorator
