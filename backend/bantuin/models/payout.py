from datetime import datetime

from bantuin.extensions import db


class PayoutStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class PayoutRequest(db.Model):
    __tablename__ = "payout_requests"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("payout_accounts.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PayoutStatus.PENDING, index=True)

    requested_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    processed_at = db.Column(db.DateTime, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    account = db.relationship("PayoutAccount")

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "wallet_id": int(self.wallet_id),
            "account_id": int(self.account_id),
            "amount": float(self.amount or 0),
            "status": self.status,
            "bank_name": self.account.bank_name if self.account else "",
            "account_name": self.account.account_name if self.account else "",
            "account_number": self.account.account_number if self.account else "",
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "admin_notes": self.admin_notes or "",
        }
