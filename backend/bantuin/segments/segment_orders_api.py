from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from bantuin.extensions import db
from bantuin.models import Payment
from bantuin.services import disputes, orders

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api")


_INIT_DONE = False


@orders_bp.before_app_request
def _ensure_tables_once():
    global _INIT_DONE
    if _INIT_DONE or not current_app.config.get("AUTO_CREATE_TABLES"):
        return
    db.create_all()
    _INIT_DONE = True


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@orders_bp.post("/orders")
@login_required
def create_order():
    data = _json()
    order = orders.create_order(
        current_user,
        data.get("service_id"),
        data.get("requirements"),
        attachments=data.get("attachments"),
        custom_deadline=data.get("custom_deadline"),
    )
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("/orders")
@login_required
def list_orders():
    args = request.args
    result = orders.list_orders(
        current_user,
        role=(args.get("role") or "").strip().lower() or None,
        status=(args.get("status") or "").strip().upper() or None,
        search=args.get("search"),
        page=args.get("page", 1),
        limit=args.get("limit", 10),
        sort_by=(args.get("sort_by") or args.get("sortBy") or "newest").strip().lower(),
    )
    return jsonify({"ok": True, **result})


@orders_bp.get("/orders/<int:order_id>")
@login_required
def get_order(order_id: int):
    order = orders.get_order(order_id, current_user)
    payment = Payment.query.filter_by(order_id=order.id).first()
    return jsonify({
        "ok": True,
        "order": order.to_dict(),
        "payment": payment.to_dict() if payment else None,
        "timeline": orders.order_timeline(order.id),
    })


@orders_bp.post("/orders/<int:order_id>/confirm")
@login_required
def confirm_order(order_id: int):
    order, session = orders.confirm_order(order_id, current_user)
    return jsonify({
        "ok": True,
        "order": order.to_dict(),
        "payment": {"token": session["token"], "redirect_url": session["redirect_url"]},
    })


@orders_bp.post("/orders/<int:order_id>/start")
@login_required
def start_work(order_id: int):
    order = orders.start_work(order_id, current_user)
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/orders/<int:order_id>/deliver")
@login_required
def deliver_work(order_id: int):
    data = _json()
    order = orders.deliver_work(order_id, current_user, data.get("delivery_note"), data.get("delivery_files"))
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/orders/<int:order_id>/revision")
@login_required
def request_revision(order_id: int):
    data = _json()
    order = orders.request_revision(order_id, current_user, data.get("revision_note"))
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/orders/<int:order_id>/approve")
@login_required
def approve_work(order_id: int):
    order = orders.approve_work(order_id, current_user)
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/orders/<int:order_id>/cancel/buyer")
@login_required
def cancel_as_buyer(order_id: int):
    order = orders.cancel_order(order_id, current_user, _json().get("reason"), "buyer")
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/orders/<int:order_id>/cancel/seller")
@login_required
def cancel_as_seller(order_id: int):
    order = orders.cancel_order(order_id, current_user, _json().get("reason"), "seller")
    return jsonify({"ok": True, "order": order.to_dict()})


@orders_bp.post("/orders/<int:order_id>/progress")
@login_required
def add_progress(order_id: int):
    data = _json()
    progress = orders.add_progress(
        order_id,
        current_user,
        data.get("title"),
        description=data.get("description"),
        images=data.get("images"),
    )
    return jsonify({"ok": True, "progress": progress.to_dict()}), 201


@orders_bp.post("/orders/<int:order_id>/dispute")
@login_required
def open_dispute(order_id: int):
    dispute = disputes.open_dispute(order_id, current_user, _json().get("reason"))
    return jsonify({"ok": True, "dispute": dispute.to_dict()}), 201
