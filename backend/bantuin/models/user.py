from datetime import datetime

from flask_login import UserMixin

from bantuin.extensions import db


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=False, default="")
    phone_number = db.Column(db.String(32), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="USER")  # USER | ADMIN
    status = db.Column(db.String(16), nullable=False, default="active")  # active | banned
    is_seller = db.Column(db.Boolean, nullable=False, default=False)

    total_orders_completed = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").upper() == "ADMIN"

    @property
    def is_active(self) -> bool:
        # Flask-Login treats inactive users as anonymous
        return (self.status or "active") == "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name or "",
            "phone_number": self.phone_number,
            "role": self.role or "USER",
            "status": self.status or "active",
            "is_seller": bool(self.is_seller),
            "total_orders_completed": int(self.total_orders_completed or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
