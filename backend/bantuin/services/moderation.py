"""Admin moderation: the service review queue and user bans."""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from bantuin.errors import InvalidStateTransition, NotFound, ValidationError
from bantuin.extensions import db
from bantuin.models import AuditLog, Service, ServiceStatus, User
from bantuin.utils.atomic import atomic, lock
from bantuin.utils.notify import notify

MAX_PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# service review
# ---------------------------------------------------------------------------

def list_pending_services() -> list[Service]:
    return (
        Service.query.filter_by(status=ServiceStatus.PENDING)
        .order_by(Service.created_at.asc(), Service.id.asc())
        .all()
    )


def _load_pending_service(service_id: int) -> Service:
    svc = lock(Service.query.filter_by(id=int(service_id))).first()
    if svc is None:
        raise NotFound("Service not found")
    if svc.status != ServiceStatus.PENDING:
        raise InvalidStateTransition(f"Only pending services can be reviewed (status {svc.status})")
    return svc


def approve_service(admin: User, service_id: int) -> Service:
    with atomic():
        svc = _load_pending_service(service_id)
        svc.status = ServiceStatus.ACTIVE
        svc.is_active = True
        svc.admin_notes = f"Approved by admin {admin.id}"
        svc.updated_at = datetime.utcnow()
        AuditLog.record("service_approved", actor_user_id=admin.id, target_type="service", target_id=int(svc.id))
        notify(
            svc.seller_id,
            f'Your service "{svc.title}" was approved and is now live.',
            f"/services/{svc.id}",
            "GENERAL",
        )

    current_app.logger.info("Service %s approved by admin %s", svc.id, admin.id)
    return svc


def reject_service(admin: User, service_id: int, reason) -> Service:
    reason = (reason or "").strip() if isinstance(reason, str) else ""
    if len(reason) < 10:
        raise ValidationError("A rejection reason of at least 10 characters is required")

    with atomic():
        svc = _load_pending_service(service_id)
        svc.status = ServiceStatus.REJECTED
        svc.is_active = False
        svc.admin_notes = reason[:2000]
        svc.updated_at = datetime.utcnow()
        AuditLog.record(
            "service_rejected",
            actor_user_id=admin.id,
            target_type="service",
            target_id=int(svc.id),
            reason=reason[:240],
        )
        notify(
            svc.seller_id,
            f'Your service "{svc.title}" was rejected. Reason: {reason}',
            f"/services/{svc.id}",
            "GENERAL",
        )

    current_app.logger.info("Service %s rejected by admin %s", svc.id, admin.id)
    return svc


# ---------------------------------------------------------------------------
# users
# ---------------------------------------------------------------------------

def list_users(*, page=1, limit=10, search=None) -> dict:
    try:
        page = max(1, int(page or 1))
        limit = max(1, min(int(limit or 10), MAX_PAGE_SIZE))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")

    q = User.query
    term = (search or "").strip()
    if term:
        q = q.filter(or_(User.full_name.ilike(f"%{term}%"), User.email.ilike(f"%{term}%")))

    total = q.count()
    rows = q.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [u.to_dict() for u in rows],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def _set_user_status(admin: User, user_id: int, status: str) -> User:
    with atomic():
        user = lock(User.query.filter_by(id=int(user_id))).first()
        if user is None:
            raise NotFound("User not found")
        if user.is_admin:
            raise ValidationError("Administrators cannot be banned or unbanned")
        previous = user.status
        user.status = status
        AuditLog.record(
            "user_banned" if status == "banned" else "user_unbanned",
            actor_user_id=admin.id,
            target_type="user",
            target_id=int(user.id),
            previous_status=previous,
        )

    current_app.logger.info("User %s status %s -> %s by admin %s", user.id, previous, status, admin.id)
    return user


def ban_user(admin: User, user_id: int) -> User:
    return _set_user_status(admin, user_id, "banned")


def unban_user(admin: User, user_id: int) -> User:
    return _set_user_status(admin, user_id, "active")
