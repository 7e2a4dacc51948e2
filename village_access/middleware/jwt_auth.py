"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

  Authorization: Bearer <token>  →  g.jwt_user_id, g.jwt_tenant_id,
                                    g.jwt_role_id, g.session_claims

The claims are only decoded here, not trusted: the tenant context middleware
re-validates them against live membership state before any tenant-scoped
handler runs. A missing, expired or malformed token leaves g.jwt_user_id as
None and downstream code answers 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from village_access.core.exceptions import ValidationError
from village_access.services.jwt_service import claims_to_context, decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_tenant_id = None
        g.jwt_role_id = None
        g.session_claims = None
        g.jwt_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            context = claims_to_context(decode_access_token(token))
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
            return
        except (pyjwt.InvalidTokenError, ValidationError) as e:
            logger.warning("Rejected access token: %s", e, extra={"request_id": getattr(g, "request_id", None)})
            g.jwt_error = "Invalid token"
            return

        g.session_claims = context
        g.jwt_user_id = context.user_id
        g.jwt_tenant_id = context.tenant_id
        g.jwt_role_id = context.role_id
