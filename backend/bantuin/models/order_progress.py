from datetime import datetime

from bantuin.extensions import db


class OrderProgress(db.Model):
    __tablename__ = "order_progress_logs"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "title": self.title,
            "description": self.description or "",
            "images": list(self.images or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
