from datetime import datetime

from bantuin.extensions import db


class Wallet(db.Model):
    __tablename__ = "wallets"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    # Only bantuin.utils.wallets.apply_ledger_entry writes this column.
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="IDR")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
    )

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "balance": float(self.balance or 0),
            "currency": self.currency or "IDR",
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
