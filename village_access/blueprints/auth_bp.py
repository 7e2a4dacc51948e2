"""
Auth Blueprint — login, credential refresh and tenant context endpoints.

  POST /api/v1/auth/login              — Email + password → JWT pair + starting context
  POST /api/v1/auth/refresh            — Refresh token → new pair (context re-validated)
  POST /api/v1/auth/logout             — Revoke refresh token(s), clear context
  GET  /api/v1/auth/me                 — Current user profile + claims
  GET  /api/v1/auth/tenants            — Communities the user may operate in
  POST /api/v1/auth/switch-tenant      — Switch community, re-issue JWT pair
  GET  /api/v1/auth/session            — Validate the current claims
  GET  /api/v1/auth/permissions        — Effective permissions with provenance
  POST /api/v1/auth/permissions/check  — Check a batch of permission keys
"""

import jwt as pyjwt
from flask import Blueprint, g, jsonify, request

from village_access.core.exceptions import ValidationError
from village_access.services.jwt_service import (
    JwtCredentialIssuer,
    claims_to_context,
    decode_access_token,
    decode_refresh_token,
    get_active_session_by_token,
    hash_token,
    latest_session_context,
    revoke_all_user_sessions,
    revoke_session,
    revoke_session_by_token,
    session_context,
)
from village_access.services.tenant_context_service import TenantContextService
from village_access.services.user_service import (
    UserServiceError,
    authenticate_user,
    get_user_by_id,
)
from village_access.utils.errors import E, api_error, reason_error

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


def _issuer(current_session=None) -> JwtCredentialIssuer:
    return JwtCredentialIssuer(
        current_session=current_session,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", ""),
    )


def _claims_required():
    """Return (claims, None) or (None, error_response)."""
    claims = getattr(g, "session_claims", None)
    if claims is None:
        return None, api_error(E.UNAUTHENTICATED, getattr(g, "jwt_error", None) or "Authentication required")
    return claims, None


def _validated_membership():
    """Return (membership, None) for the current claims, or (None, error_response)."""
    claims, err = _claims_required()
    if err:
        return None, err
    result = TenantContextService().validate_session(claims)
    if not result.valid:
        return None, reason_error(
            result.reason.value,
            result.error,
            details={"reason": result.reason.value, "reauthenticate": result.requires_reauthentication},
        )
    return result.membership, None


def _carried_context(user_id: int):
    """Context to keep at login: a bearer token's claims, else the latest session's.

    Only a hint. Bootstrap keeps it solely when it still validates.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            context = claims_to_context(decode_access_token(auth_header[7:]))
        except (pyjwt.InvalidTokenError, ValidationError):
            context = None
        if context is not None and context.user_id == user_id and context.has_tenant:
            return context
    return latest_session_context(user_id)


def _session_for(refresh_token: str, user_id: int):
    if not refresh_token:
        return None
    return get_active_session_by_token(user_id, hash_token(refresh_token))


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return JWT pair.

    Body: { "email": "...", "password": "..." }

    A context the user already holds (bearer token, else the latest live
    session) is kept when it still validates. Otherwise a user with exactly
    one active community gets it embedded straight away; a user with several
    must call /switch-tenant before tenant-scoped calls.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    try:
        user = authenticate_user(email, password)
    except UserServiceError as e:
        code = E.UNAUTHENTICATED if e.status_code == 401 else E.FORBIDDEN
        return api_error(code, e.message, status=e.status_code)

    result, tokens = TenantContextService().start_session(
        user.id, _issuer(), current=_carried_context(user.id)
    )

    return jsonify({
        **tokens,
        "user": user.to_dict(),
        "context": result.to_dict(),
    }), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/refresh
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """
    Exchange a refresh token for a new pair (token rotation).

    Body: { "refresh_token": "..." }

    The context recorded on the session is re-validated first. If the
    membership was revoked, the role changed or the community was suspended
    since it was issued, the session is revoked and the client must log in
    again.
    """
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token", "")

    if not refresh_token:
        return api_error(E.VALIDATION_REQUIRED, "Refresh token is required")

    try:
        payload = decode_refresh_token(refresh_token)
        user_id = int(payload.get("sub"))
    except (pyjwt.InvalidTokenError, TypeError, ValueError):
        return api_error(E.UNAUTHENTICATED, "Invalid or expired refresh token")

    session = _session_for(refresh_token, user_id)
    if not session:
        return api_error(E.UNAUTHENTICATED, "Session not found or revoked")

    if session.is_expired:
        revoke_session(session)
        return api_error(E.UNAUTHENTICATED, "Session expired")

    user = get_user_by_id(user_id)
    if not user or user.status != "active":
        revoke_session(session)
        return api_error(E.UNAUTHENTICATED, "User inactive or not found")

    context = session_context(session)
    if context.has_tenant:
        result = TenantContextService().validate_session(context)
        if not result.valid:
            revoke_session(session)
            return reason_error(
                result.reason.value,
                result.error,
                details={"reason": result.reason.value, "reauthenticate": True},
            )

    tokens = _issuer(session).issue(context)
    return jsonify(tokens), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """
    Revoke the current refresh token / session and clear its tenant context.

    Body: { "refresh_token": "..." }  or uses Authorization header
    (revokes every session of the user).
    """
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token", "")

    if refresh_token:
        revoke_session_by_token(hash_token(refresh_token))
    elif getattr(g, "jwt_user_id", None):
        revoke_all_user_sessions(g.jwt_user_id)
    else:
        return api_error(E.UNAUTHENTICATED, "Authentication required")

    return jsonify({"message": "Logged out successfully"}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    """Current user profile and the claims their credential carries."""
    claims, err = _claims_required()
    if err:
        return err

    user = get_user_by_id(claims.user_id)
    if not user:
        return api_error(E.NOT_FOUND, "User not found")

    return jsonify({
        "user": user.to_dict(),
        "context": claims.to_claims(),
    }), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/tenants
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/tenants", methods=["GET"])
def list_tenants():
    """Active memberships of the current user, with tenant and role."""
    claims, err = _claims_required()
    if err:
        return err

    memberships = TenantContextService().list_accessible_tenants(claims.user_id)
    return jsonify({
        "tenants": [m.to_tenant_info() for m in memberships],
        "current_tenant_id": claims.tenant_id,
    }), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/switch-tenant
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/switch-tenant", methods=["POST"])
def switch_tenant():
    """
    Switch to another community and re-issue the JWT pair.

    Body: { "tenant_id": 2, "refresh_token": "..." }

    With a refresh token the old session is rotated out. The new claims only
    apply once the client replaces its tokens with the ones returned here.
    """
    claims, err = _claims_required()
    if err:
        return err

    data = request.get_json(silent=True) or {}
    tenant_id = data.get("tenant_id")
    if not isinstance(tenant_id, int) or isinstance(tenant_id, bool):
        return api_error(E.VALIDATION_INVALID, "tenant_id must be an integer")

    issuer = _issuer(_session_for(data.get("refresh_token", ""), claims.user_id))
    result, tokens = TenantContextService().switch_and_refresh(claims.user_id, tenant_id, issuer)
    if not result.success:
        return reason_error(result.reason.value, result.error, details={"reason": result.reason.value})

    return jsonify({**tokens, "context": result.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/session
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/session", methods=["GET"])
def session_status():
    """Validate the current claims against live state. Always 200 when authenticated."""
    claims, err = _claims_required()
    if err:
        return err

    result = TenantContextService().validate_session(claims)
    return jsonify(result.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# Permissions
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/permissions", methods=["GET"])
def permissions():
    """Effective permissions in the current community, with provenance."""
    membership, err = _validated_membership()
    if err:
        return err
    return jsonify(TenantContextService().get_permissions(membership).to_dict()), 200


@auth_bp.route("/permissions/check", methods=["POST"])
def check_permissions():
    """
    Body: { "keys": ["manage_users", "view_reports"] }
    """
    data = request.get_json(silent=True) or {}
    keys = data.get("keys")
    if not isinstance(keys, list) or not keys or not all(isinstance(k, str) and k for k in keys):
        return api_error(E.VALIDATION_INVALID, "keys must be a non-empty list of permission keys")

    membership, err = _validated_membership()
    if err:
        return err
    return jsonify({"results": TenantContextService().check_permissions(membership, keys)}), 200
