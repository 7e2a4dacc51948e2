"""
Household Blueprint — tenant-scoped residential units.

  GET  /api/v1/households          — households of the active community
  POST /api/v1/households          — create (manage_household)
  GET  /api/v1/households/<id>     — one household of the active community

Queries always go through ``Household.query_for_context`` with the context
validated by the tenant middleware, so a household of another community is
indistinguishable from a missing one.
"""

from flask import Blueprint, g, jsonify, request

from village_access.middleware.permission_required import require_permission
from village_access.models import db
from village_access.models.household import HOUSEHOLD_STATUSES, Household
from village_access.utils.errors import E, api_error

household_bp = Blueprint("household_bp", __name__, url_prefix="/api/v1/households")

# Household.block / Household.lot column width
MAX_UNIT_LENGTH = 50


@household_bp.route("", methods=["GET"])
def list_households():
    q = Household.query_for_context(g.session_context)
    status = request.args.get("status")
    if status:
        q = q.filter_by(status=status)
    households = q.order_by(Household.block, Household.lot, Household.id).all()
    return jsonify({"items": [h.to_dict() for h in households], "total": len(households)}), 200


@household_bp.route("", methods=["POST"])
@require_permission("manage_household")
def create_household():
    """Body: { "address": "...", "block": "B", "lot": "12" }"""
    data = request.get_json(silent=True) or {}
    address = data.get("address") or ""
    if not isinstance(address, str):
        return api_error(E.VALIDATION_INVALID, "address must be a string")
    address = address.strip()
    if not address:
        return api_error(E.VALIDATION_REQUIRED, "address is required")
    status = data.get("status", "active")
    if status not in HOUSEHOLD_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"status must be one of {', '.join(HOUSEHOLD_STATUSES)}")

    unit = {}
    for field in ("block", "lot"):
        value = data.get(field)
        if value is not None:
            if not isinstance(value, str):
                return api_error(E.VALIDATION_INVALID, f"{field} must be a string")
            value = value.strip() or None
            if value and len(value) > MAX_UNIT_LENGTH:
                return api_error(E.VALIDATION_INVALID, f"{field} must be at most {MAX_UNIT_LENGTH} characters")
        unit[field] = value

    household = Household(
        tenant_id=g.session_context.tenant_id,
        address=address[:500],
        block=unit["block"],
        lot=unit["lot"],
        status=status,
        created_by=g.session_context.user_id,
    )
    db.session.add(household)
    db.session.commit()
    return jsonify(household.to_dict()), 201


@household_bp.route("/<int:household_id>", methods=["GET"])
def get_household(household_id):
    household = Household.query_for_context(g.session_context).filter_by(id=household_id).first()
    if household is None:
        return api_error(E.NOT_FOUND, "Household not found")
    return jsonify(household.to_dict()), 200
