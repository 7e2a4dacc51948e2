"""
TenantModel — Abstract base class for tenant-scoped models.

Every community-owned table inherits from TenantModel instead of db.Model.
Rows are only ever read through ``query_for_context`` with a validated
SessionContext, never through an unscoped ``Model.query``.
"""

from village_access.models import db


class TenantModel(db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_tenant(cls, tenant_id):
        """Return a query filtered by tenant_id."""
        if tenant_id is None:
            raise ValueError(f"{cls.__name__} queries require a tenant_id")
        return cls.query.filter_by(tenant_id=tenant_id)

    @classmethod
    def query_for_context(cls, context):
        """Return a query filtered by the active tenant of a SessionContext."""
        if context is None or context.tenant_id is None:
            raise ValueError(f"{cls.__name__} queries require an active tenant context")
        return cls.query_for_tenant(context.tenant_id)
