from datetime import datetime

from bantuin.extensions import db


class PaymentStatus:
    PENDING = "PENDING"
    SETTLEMENT = "SETTLEMENT"
    EXPIRE = "EXPIRE"
    CANCELLED = "CANCELLED"


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING)

    gateway = db.Column(db.String(32), nullable=False, default="midtrans")
    gateway_token = db.Column(db.String(255), nullable=True)
    gateway_redirect_url = db.Column(db.String(512), nullable=True)
    # Attempt id sent to the gateway ("<order id>-T<millis>"), fresh per retry.
    gateway_order_id = db.Column(db.String(80), nullable=True, index=True)

    payment_type = db.Column(db.String(32), nullable=True)
    transaction_id = db.Column(db.String(128), nullable=True, unique=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "amount": float(self.amount or 0),
            "status": self.status,
            "gateway": self.gateway,
            "gateway_redirect_url": self.gateway_redirect_url or "",
            "gateway_order_id": self.gateway_order_id or "",
            "payment_type": self.payment_type or "",
            "transaction_id": self.transaction_id or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
