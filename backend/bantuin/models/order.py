from datetime import datetime

from bantuin.extensions import db


class OrderStatus:
    DRAFT = "DRAFT"
    WAITING_PAYMENT = "WAITING_PAYMENT"
    PAID_ESCROW = "PAID_ESCROW"
    IN_PROGRESS = "IN_PROGRESS"
    DELIVERED = "DELIVERED"
    REVISION = "REVISION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"
    RESOLVED = "RESOLVED"

    ALL = (
        DRAFT,
        WAITING_PAYMENT,
        PAID_ESCROW,
        IN_PROGRESS,
        DELIVERED,
        REVISION,
        COMPLETED,
        CANCELLED,
        DISPUTED,
        RESOLVED,
    )
    TERMINAL = (COMPLETED, CANCELLED, RESOLVED)


# Legal moves of the order lifecycle. Anything not listed is rejected.
TRANSITIONS = {
    OrderStatus.DRAFT: {OrderStatus.WAITING_PAYMENT, OrderStatus.CANCELLED},
    OrderStatus.WAITING_PAYMENT: {OrderStatus.WAITING_PAYMENT, OrderStatus.PAID_ESCROW, OrderStatus.CANCELLED},
    OrderStatus.PAID_ESCROW: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {OrderStatus.DELIVERED, OrderStatus.DISPUTED},
    OrderStatus.DELIVERED: {OrderStatus.REVISION, OrderStatus.COMPLETED, OrderStatus.DISPUTED},
    OrderStatus.REVISION: {OrderStatus.DELIVERED, OrderStatus.DISPUTED},
    OrderStatus.DISPUTED: {OrderStatus.RESOLVED, OrderStatus.COMPLETED},
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Snapshot of the service at creation time; later service edits never touch these.
    title = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    delivery_time = db.Column(db.Integer, nullable=False)
    max_revisions = db.Column(db.Integer, nullable=False)

    requirements = db.Column(db.Text, nullable=False)
    attachments = db.Column(db.JSON, nullable=False, default=list)

    delivery_files = db.Column(db.JSON, nullable=False, default=list)
    delivery_note = db.Column(db.Text, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(24), nullable=False, default=OrderStatus.DRAFT, index=True)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime, nullable=True)

    revision_count = db.Column(db.Integer, nullable=False, default=0)
    revision_notes = db.Column(db.JSON, nullable=False, default=list)

    due_date = db.Column(db.DateTime, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("revision_count <= max_revisions", name="ck_orders_revision_quota"),
    )

    service = db.relationship("Service")

    @property
    def seller_id(self) -> int:
        return int(self.service.seller_id)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "service_id": int(self.service_id),
            "buyer_id": int(self.buyer_id),
            "seller_id": self.seller_id if self.service is not None else None,
            "title": self.title,
            "price": float(self.price or 0),
            "delivery_time": int(self.delivery_time or 0),
            "max_revisions": int(self.max_revisions or 0),
            "requirements": self.requirements or "",
            "attachments": list(self.attachments or []),
            "delivery_files": list(self.delivery_files or []),
            "delivery_note": self.delivery_note or "",
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "status": self.status,
            "is_paid": bool(self.is_paid),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "revision_count": int(self.revision_count or 0),
            "revision_notes": list(self.revision_notes or []),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
