from datetime import datetime

from bantuin.extensions import db


class DisputeStatus:
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class DisputeResolution:
    RELEASE_TO_SELLER = "RELEASE_TO_SELLER"
    REFUND_TO_BUYER = "REFUND_TO_BUYER"

    ALL = (RELEASE_TO_SELLER, REFUND_TO_BUYER)


class Dispute(db.Model):
    __tablename__ = "disputes"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True, index=True)
    opened_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=DisputeStatus.OPEN, index=True)
    reason = db.Column(db.Text, nullable=False)

    resolution = db.Column(db.String(24), nullable=True)
    resolved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    order = db.relationship("Order")

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "order_title": self.order.title if self.order else "",
            "order_price": float(self.order.price or 0) if self.order else 0.0,
            "opened_by_id": int(self.opened_by_id),
            "status": self.status,
            "reason": self.reason,
            "resolution": self.resolution,
            "resolved_by_id": int(self.resolved_by_id) if self.resolved_by_id is not None else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "admin_notes": self.admin_notes or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
