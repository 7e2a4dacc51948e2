"""
Household — tenant-scoped residential unit.

Households are the first community-owned resource; they exist here so tenant
isolation can be exercised end to end through the context middleware.
"""

from datetime import datetime, timezone

from village_access.models import db
from village_access.models.base import TenantModel


HOUSEHOLD_STATUSES = ("active", "inactive", "suspended")


class Household(TenantModel):
    __tablename__ = "households"

    id = db.Column(db.Integer, primary_key=True)
    block = db.Column(db.String(50))
    lot = db.Column(db.String(50))
    address = db.Column(db.String(500), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active")
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index("ix_households_tenant_block", "tenant_id", "block"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "block": self.block,
            "lot": self.lot,
            "address": self.address,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
