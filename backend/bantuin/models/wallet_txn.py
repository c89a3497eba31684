from datetime import datetime

from sqlalchemy import event

from bantuin.extensions import db


class WalletTxnType:
    ESCROW_RELEASE = "ESCROW_RELEASE"
    ESCROW_REFUND = "ESCROW_REFUND"
    PAYOUT_REQUEST = "PAYOUT_REQUEST"
    PAYOUT_REJECTED = "PAYOUT_REJECTED"
    DISPUTE_RELEASE = "DISPUTE_RELEASE"
    DISPUTE_REFUND = "DISPUTE_REFUND"

    ALL = (ESCROW_RELEASE, ESCROW_REFUND, PAYOUT_REQUEST, PAYOUT_REJECTED, DISPUTE_RELEASE, DISPUTE_REFUND)
    INCOME = (ESCROW_RELEASE, PAYOUT_REJECTED, DISPUTE_REFUND, DISPUTE_RELEASE)


class WalletTxn(db.Model):
    __tablename__ = "wallet_txns"

    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)  # signed: credit > 0, debit < 0
    balance_before = db.Column(db.Numeric(12, 2), nullable=False)
    balance_after = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(240), nullable=False, default="")

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    payout_request_id = db.Column(db.Integer, db.ForeignKey("payout_requests.id"), nullable=True, index=True)
    dispute_id = db.Column(db.Integer, db.ForeignKey("disputes.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "wallet_id": int(self.wallet_id),
            "type": self.type,
            "amount": float(self.amount or 0),
            "balance_before": float(self.balance_before or 0),
            "balance_after": float(self.balance_after or 0),
            "description": self.description or "",
            "order_id": int(self.order_id) if self.order_id is not None else None,
            "payment_id": int(self.payment_id) if self.payment_id is not None else None,
            "payout_request_id": int(self.payout_request_id) if self.payout_request_id is not None else None,
            "dispute_id": int(self.dispute_id) if self.dispute_id is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(WalletTxn, "before_update")
def _refuse_update(mapper, connection, target):
    raise RuntimeError(f"wallet_txns are append-only (id={target.id})")


@event.listens_for(WalletTxn, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise RuntimeError(f"wallet_txns are append-only (id={target.id})")
