from __future__ import annotations

from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from bantuin.errors import Forbidden, InvalidStateTransition, NotFound, ValidationError
from bantuin.extensions import db
from bantuin.models import Service, ServiceStatus
from bantuin.services.orders import require_text
from bantuin.utils.atomic import atomic
from bantuin.utils.commission import as_money

services_bp = Blueprint("services_bp", __name__, url_prefix="/api")

# Statuses a seller may set; PENDING and REJECTED belong to admin review.
OWNER_STATUSES = (ServiceStatus.ACTIVE, ServiceStatus.PAUSED, ServiceStatus.DELETED)


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _int_field(data: dict, name: str, lo: int, hi: int) -> int:
    raw = data.get(name)
    if isinstance(raw, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        v = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if v < lo or v > hi:
        raise ValidationError(f"{name} must be between {lo} and {hi}")
    return v


def _price(data: dict):
    try:
        price = as_money(data.get("price"))
    except ValueError as e:
        raise ValidationError(str(e))
    if price <= 0:
        raise ValidationError("price must be positive")
    if price != price.to_integral_value():
        raise ValidationError("price must be a whole rupiah amount")
    return price


@services_bp.post("/services")
@login_required
def create_service():
    data = _json()
    svc = Service(
        seller_id=current_user.id,
        title=require_text(data.get("title"), "title", 5, 120),
        description=require_text(data.get("description"), "description", 0, 5000),
        category=(data.get("category") or "").strip()[:64],
        price=_price(data),
        delivery_time=_int_field(data, "delivery_time", 1, 90),
        revisions=_int_field(data, "revisions", 0, 10) if "revisions" in data else 1,
        status=ServiceStatus.PENDING,
        is_active=False,
    )
    with atomic():
        db.session.add(svc)
        current_user.is_seller = True
        db.session.flush()
    return jsonify({"ok": True, "service": svc.to_dict()}), 201


@services_bp.patch("/services/<int:service_id>")
@login_required
def update_service(service_id: int):
    data = _json()
    with atomic():
        svc = db.session.get(Service, service_id)
        if svc is None:
            raise NotFound("Service not found")
        if int(svc.seller_id) != int(current_user.id):
            raise Forbidden("You do not own this service")

        if "title" in data:
            svc.title = require_text(data.get("title"), "title", 5, 120)
        if "description" in data:
            svc.description = require_text(data.get("description"), "description", 0, 5000)
        if "category" in data:
            svc.category = (data.get("category") or "").strip()[:64]
        if "price" in data:
            svc.price = _price(data)
        if "delivery_time" in data:
            svc.delivery_time = _int_field(data, "delivery_time", 1, 90)
        if "revisions" in data:
            svc.revisions = _int_field(data, "revisions", 0, 10)
        if "status" in data:
            status = (data.get("status") or "").strip().upper()
            if status not in OWNER_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(OWNER_STATUSES)}")
            if status == ServiceStatus.ACTIVE and svc.status not in (ServiceStatus.ACTIVE, ServiceStatus.PAUSED):
                raise InvalidStateTransition("Only an approved service can be activated")
            svc.status = status
            svc.is_active = status == ServiceStatus.ACTIVE
        elif svc.status == ServiceStatus.REJECTED:
            # An edited rejected service goes back into the review queue.
            svc.status = ServiceStatus.PENDING
        svc.updated_at = datetime.utcnow()
    return jsonify({"ok": True, "service": svc.to_dict()})
