from datetime import datetime

from bantuin.extensions import db


class IdempotencyKey(db.Model):
    """A client-supplied retry key and the response it produced.

    Keys are scoped per user and route; ``response_body`` stays NULL while the
    first request is still running.
    """

    __tablename__ = "idempotency_keys"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    route = db.Column(db.String(128), nullable=False)
    request_hash = db.Column(db.String(64), nullable=False)

    response_body = db.Column(db.Text, nullable=True)
    response_status = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("user_id", "route", "key", name="uq_idempotency_keys_scope"),
    )

    @property
    def is_complete(self) -> bool:
        return self.response_body is not None
