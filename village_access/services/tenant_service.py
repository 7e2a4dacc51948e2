"""
Tenant Service — community lifecycle, owned by the platform administrator.

Suspending or cancelling a community does not touch outstanding credentials.
Sessions pointing at it are refused by the validator on their next request.
"""

import logging

from sqlalchemy.exc import IntegrityError

from village_access.core.exceptions import ConflictError, NotFoundError, ValidationError
from village_access.models import db
from village_access.models.auth import TENANT_STATUSES, Tenant
from village_access.services.context_models import validate_slug

logger = logging.getLogger(__name__)


def create_tenant(name: str, slug: str, status: str = "trial", settings: dict | None = None) -> Tenant:
    if not name or not name.strip():
        raise ValidationError("name is required", details={"name": name})
    validate_slug(slug)
    _check_status(status)
    if get_tenant_by_slug(slug) is not None:
        raise ConflictError("Tenant", "slug", slug)

    tenant = Tenant(name=name.strip(), slug=slug, status=status, settings=settings or {})
    db.session.add(tenant)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Tenant insert rejected (%s): %s", slug, exc.orig)
        raise ConflictError("Tenant", "slug", slug) from exc
    logger.info("Tenant %d created (%s, %s)", tenant.id, slug, status, extra={"tenant_id": tenant.id})
    return tenant


def get_tenant_by_slug(slug: str) -> Tenant | None:
    return Tenant.query.filter_by(slug=slug).first()


def set_tenant_status(tenant_id: int, status: str) -> Tenant:
    """Move a community between active, trial, suspended, cancelled and inactive."""
    _check_status(status)
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    previous = tenant.status
    tenant.status = status
    db.session.commit()
    logger.info(
        "Tenant %d status %s -> %s", tenant_id, previous, status,
        extra={"tenant_id": tenant_id},
    )
    return tenant


def _check_status(status: str) -> None:
    if status not in TENANT_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(TENANT_STATUSES)}",
            details={"status": status},
        )
