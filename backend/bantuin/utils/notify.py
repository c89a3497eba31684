from __future__ import annotations

from flask import current_app

from bantuin.extensions import db
from bantuin.models import Notification


def notify(user_id: int, content: str, link: str | None = None, type: str = "GENERAL") -> Notification | None:
    """Queue an in-app notification without endangering the caller's transaction.

    The row is written inside a SAVEPOINT; if that fails only the savepoint is
    rolled back and the failure is logged. Nothing raised here reaches the
    caller.
    """
    try:
        with db.session.begin_nested():
            n = Notification(
                user_id=int(user_id),
                content=(content or "")[:1000],
                link=(link or None),
                type=(type or "GENERAL").upper(),
            )
            db.session.add(n)
        return n
    except Exception:
        current_app.logger.exception("Notification for user %s dropped", user_id)
        return None


def short_ref(order_id: int) -> str:
    return f"#{int(order_id):06d}"
