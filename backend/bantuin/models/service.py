from datetime import datetime

from bantuin.extensions import db


class ServiceStatus:
    PENDING = "PENDING"  # waiting for admin review
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    PAUSED = "PAUSED"
    DELETED = "DELETED"

    ALL = (PENDING, ACTIVE, REJECTED, PAUSED, DELETED)


class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    category = db.Column(db.String(64), nullable=False, default="")

    price = db.Column(db.Numeric(12, 2), nullable=False)
    delivery_time = db.Column(db.Integer, nullable=False)  # days
    revisions = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(16), nullable=False, default=ServiceStatus.PENDING, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    admin_notes = db.Column(db.Text, nullable=True)

    total_orders = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_orderable(self) -> bool:
        return bool(self.is_active) and (self.status or "") == ServiceStatus.ACTIVE

    def to_dict(self):
        return {
            "id": int(self.id),
            "seller_id": int(self.seller_id),
            "title": self.title,
            "description": self.description or "",
            "category": self.category or "",
            "price": float(self.price or 0),
            "delivery_time": int(self.delivery_time or 0),
            "revisions": int(self.revisions or 0),
            "status": self.status,
            "is_active": bool(self.is_active),
            "admin_notes": self.admin_notes or "",
            "total_orders": int(self.total_orders or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
