from __future__ import annotations

from functools import wraps

from flask import jsonify
from flask_login import current_user, login_required

from bantuin.errors import Forbidden
from bantuin.extensions import db, login_manager
from bantuin.models import User
from bantuin.utils.jwt_utils import ACCESS, decode_token, get_bearer_token


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(req):
    """Let @login_required accept `Authorization: Bearer <jwt>`."""
    token = get_bearer_token(req.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("type") != ACCESS:
        return None
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"ok": False, "error": "unauthorized", "message": "Authentication required"}), 401


def admin_required(fn):
    @wraps(fn)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            raise Forbidden("Admin access required")
        return fn(*args, **kwargs)

    return wrapper
