from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from bantuin.auth import admin_required
from bantuin.jobs.wallet_reconciler import reconcile_wallets
from bantuin.services import disputes, moderation, payouts, reporting

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@admin_bp.get("/payouts/pending")
@admin_required
def pending_payouts():
    return jsonify({"ok": True, "items": [r.to_dict() for r in payouts.list_pending_payouts()]})


@admin_bp.post("/payouts/<int:payout_id>/approve")
@admin_required
def approve_payout(payout_id: int):
    req = payouts.approve_payout(current_user, payout_id, _json().get("admin_notes"))
    return jsonify({"ok": True, "payout_request": req.to_dict()})


@admin_bp.post("/payouts/<int:payout_id>/reject")
@admin_required
def reject_payout(payout_id: int):
    req = payouts.reject_payout(current_user, payout_id, _json().get("reason"))
    return jsonify({"ok": True, "payout_request": req.to_dict()})


@admin_bp.get("/disputes/open")
@admin_required
def open_disputes():
    return jsonify({"ok": True, "items": [d.to_dict() for d in disputes.list_open_disputes()]})


@admin_bp.post("/disputes/<int:dispute_id>/resolve")
@admin_required
def resolve_dispute(dispute_id: int):
    data = _json()
    dispute = disputes.resolve_dispute(
        current_user,
        dispute_id,
        (data.get("resolution") or "").strip().upper(),
        admin_notes=data.get("admin_notes"),
    )
    return jsonify({"ok": True, "dispute": dispute.to_dict()})


@admin_bp.get("/dashboard/stats")
@admin_required
def dashboard_stats():
    return jsonify({"ok": True, **reporting.dashboard_stats()})


@admin_bp.get("/dashboard/income-history")
@admin_required
def income_history():
    return jsonify({"ok": True, "items": reporting.income_history()})


@admin_bp.post("/wallets/reconcile")
@admin_required
def reconcile():
    limit = request.args.get("limit", 500, type=int)
    return jsonify({"ok": True, **reconcile_wallets(limit=limit)})


@admin_bp.get("/services/pending")
@admin_required
def pending_services():
    return jsonify({"ok": True, "items": [s.to_dict() for s in moderation.list_pending_services()]})


@admin_bp.post("/services/<int:service_id>/approve")
@admin_required
def approve_service(service_id: int):
    svc = moderation.approve_service(current_user, service_id)
    return jsonify({"ok": True, "service": svc.to_dict()})


@admin_bp.post("/services/<int:service_id>/reject")
@admin_required
def reject_service(service_id: int):
    svc = moderation.reject_service(current_user, service_id, _json().get("reason"))
    return jsonify({"ok": True, "service": svc.to_dict()})


@admin_bp.get("/users")
@admin_required
def list_users():
    args = request.args
    result = moderation.list_users(page=args.get("page", 1), limit=args.get("limit", 10), search=args.get("search"))
    return jsonify({"ok": True, **result})


@admin_bp.post("/users/<int:user_id>/ban")
@admin_required
def ban_user(user_id: int):
    return jsonify({"ok": True, "user": moderation.ban_user(current_user, user_id).to_dict()})


@admin_bp.post("/users/<int:user_id>/unban")
@admin_required
def unban_user(user_id: int):
    return jsonify({"ok": True, "user": moderation.unban_user(current_user, user_id).to_dict()})
