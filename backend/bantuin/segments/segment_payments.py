from __future__ import annotations

from flask import Blueprint, jsonify, request

from bantuin.services.payments import handle_webhook

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")


@payments_bp.post("/webhook")
def midtrans_webhook():
    # Midtrans HTTP notification; authenticated by signature_key, not by a user token.
    payload = request.get_json(silent=True)
    ack = handle_webhook(payload if isinstance(payload, dict) else {})
    return jsonify({"ok": True, **ack}), 200
