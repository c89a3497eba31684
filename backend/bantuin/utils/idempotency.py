from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any

from flask import request
from sqlalchemy.exc import IntegrityError

from bantuin.extensions import db
from bantuin.models import IdempotencyKey

HEADERS = ("Idempotency-Key", "X-Idempotency-Key")


def _fingerprint(payload: Any) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def get_idempotency_key() -> str | None:
    for header in HEADERS:
        value = (request.headers.get(header) or "").strip()
        if value:
            return value[:128]
    return None


def _conflict(message: str) -> tuple:
    return ("conflict", {"ok": False, "error": "conflict", "message": message}, 409)


def lookup_response(user_id: int | None, route: str, payload: Any):
    """Check a client retry against a stored response.

    Returns None when the request carries no key, ("hit", body, status) for a
    replay, ("conflict", body, 409) when the key was used with another payload
    or is still in flight, and ("miss", row, 0) when the caller should run the
    request and then call store_response.
    """
    key = get_idempotency_key()
    if key is None:
        return None

    fingerprint = _fingerprint(payload)
    scope = {"key": key, "user_id": user_id, "route": route}
    row = IdempotencyKey.query.filter_by(**scope).first()
    if row is None:
        row = IdempotencyKey(request_hash=fingerprint, **scope)
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost the race to a concurrent retry with the same key.
            db.session.rollback()
            row = IdempotencyKey.query.filter_by(**scope).one()
        else:
            return ("miss", row, 0)

    if row.request_hash != fingerprint:
        return _conflict("Idempotency key reuse with different payload")
    if not row.is_complete:
        return _conflict("Request with this idempotency key is still in progress")
    return ("hit", json.loads(row.response_body), int(row.response_status))


def store_response(row: IdempotencyKey, body: Any, status: int) -> None:
    row.response_body = json.dumps(body, default=str)
    row.response_status = int(status)
    row.completed_at = datetime.utcnow()
    db.session.commit()


def release_key(row: IdempotencyKey) -> None:
    """Forget a key whose request failed so the client may retry it."""
    db.session.rollback()
    db.session.delete(db.session.merge(row))
    db.session.commit()
