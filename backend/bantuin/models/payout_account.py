from datetime import datetime

from bantuin.extensions import db


class PayoutAccount(db.Model):
    __tablename__ = "payout_accounts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    bank_name = db.Column(db.String(80), nullable=False)
    account_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(32), nullable=False)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "account_number", name="uq_payout_accounts_user_number"),
    )

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "bank_name": self.bank_name,
            "account_name": self.account_name,
            "account_number": self.account_number,
            "is_primary": bool(self.is_primary),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
