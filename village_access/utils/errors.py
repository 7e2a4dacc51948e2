"""Standardised API error responses.

Usage
-----
    from village_access.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Tenant not found")
    return api_error(E.STALE_CONTEXT, "Session no longer valid", details={"reauthenticate": True})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    STALE_CONTEXT = "ERR_STALE_CONTEXT"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    NO_CONTEXT = "ERR_NO_CONTEXT"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"
    INACTIVE = "ERR_INACTIVE"

    # Server – HTTP 500 / 502
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"
    CREDENTIAL_REFRESH = "ERR_CREDENTIAL_REFRESH"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.UNAUTHENTICATED: 401,
    E.STALE_CONTEXT: 401,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.NO_CONTEXT: 409,
    E.FORBIDDEN: 403,
    E.INACTIVE: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.CREDENTIAL_REFRESH: 502,
}

# Structured failure reason → error code
REASON_CODES: dict[str, str] = {
    "not_found": E.NOT_FOUND,
    "inactive": E.INACTIVE,
    "forbidden": E.FORBIDDEN,
    "stale_context": E.STALE_CONTEXT,
    "no_context": E.NO_CONTEXT,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (failure reason, re-authentication hint).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def reason_error(reason: str | None, message: str, *, details: dict | None = None):
    """Map a structured failure reason (switch/validate) to an API error."""
    code = REASON_CODES.get(reason or "", E.FORBIDDEN)
    return api_error(code, message, details=details)
