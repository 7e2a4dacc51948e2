"""
Tenant Context Middleware — Enforces tenant isolation on API requests.

For every tenant-scoped API request:
  1. g.session_claims is already set by jwt_auth middleware
  2. The claims are validated against live membership state
  3. g.session_context / g.tenant_membership / g.tenant are set for handlers

A request without a user is refused with 401. A credential whose context no
longer matches live state (membership revoked, role changed, community
suspended) is refused and the client is told to re-authenticate. A credential
without any tenant claim is refused with 409 until the user switches.

Chain order:
  timing.py  →  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, request

from village_access.services.tenant_context_service import TenantContextService
from village_access.utils.errors import E, api_error, reason_error

logger = logging.getLogger(__name__)

# Auth endpoints manage the context themselves
TENANT_SKIP_PREFIXES = (
    "/api/v1/auth/",
    "/api/v1/health",
)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.session_context = None
        g.tenant_membership = None
        g.tenant = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        claims = getattr(g, "session_claims", None)
        if claims is None:
            return api_error(E.UNAUTHENTICATED, getattr(g, "jwt_error", None) or "Authentication required")

        result = TenantContextService().validate_session(claims)
        if not result.valid:
            return reason_error(
                result.reason.value,
                result.error,
                details={
                    "reason": result.reason.value,
                    "reauthenticate": result.requires_reauthentication,
                },
            )

        g.session_context = claims.with_tenant(result.membership.tenant_id, result.membership.role_id)
        g.tenant_membership = result.membership
        g.tenant = result.tenant
        return None

    logger.info("Tenant context middleware installed")
