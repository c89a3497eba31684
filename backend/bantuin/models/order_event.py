from datetime import datetime

from bantuin.extensions import db


class OrderEvent(db.Model):
    """Append-only audit trail of an order's status changes."""

    __tablename__ = "order_events"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # "CREATED" for the first row, "<FROM>-><TO>" for every transition
    event = db.Column(db.String(64), nullable=False)
    from_status = db.Column(db.String(24), nullable=True)
    to_status = db.Column(db.String(24), nullable=True)
    note = db.Column(db.String(250), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "actor_user_id": self.actor_user_id,
            "event": self.event,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "note": self.note or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
