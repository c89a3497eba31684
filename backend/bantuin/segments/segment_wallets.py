from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from bantuin.extensions import db
from bantuin.services import payouts
from bantuin.utils.idempotency import lookup_response, release_key, store_response
from bantuin.utils.wallets import get_or_create_wallet, wallet_history

wallets_bp = Blueprint("wallets_bp", __name__, url_prefix="/api/wallet")


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@wallets_bp.get("")
@login_required
def get_wallet():
    w = get_or_create_wallet(current_user.id, for_update=False)
    db.session.commit()
    return jsonify({"ok": True, "wallet": w.to_dict()})


@wallets_bp.get("/history")
@login_required
def history():
    limit = request.args.get("limit", 50, type=int)
    rows = wallet_history(current_user.id, limit=limit)
    return jsonify({"ok": True, "items": [t.to_dict() for t in rows]})


@wallets_bp.get("/payout-accounts")
@login_required
def list_accounts():
    rows = payouts.list_payout_accounts(current_user)
    return jsonify({"ok": True, "items": [a.to_dict() for a in rows]})


@wallets_bp.post("/payout-accounts")
@login_required
def add_account():
    data = _json()
    acct = payouts.add_payout_account(
        current_user,
        data.get("bank_name"),
        data.get("account_name"),
        data.get("account_number"),
        is_primary=bool(data.get("is_primary")),
    )
    return jsonify({"ok": True, "account": acct.to_dict()}), 201


@wallets_bp.delete("/payout-accounts/<int:account_id>")
@login_required
def remove_account(account_id: int):
    payouts.remove_payout_account(current_user, account_id)
    return jsonify({"ok": True})


@wallets_bp.get("/payout-requests")
@login_required
def list_requests():
    rows = payouts.list_payout_requests(current_user)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]})


@wallets_bp.post("/payout-requests")
@login_required
def create_request():
    data = _json()
    idem = lookup_response(current_user.id, "/api/wallet/payout-requests", data)
    if idem is not None and idem[0] in ("hit", "conflict"):
        return jsonify(idem[1]), idem[2]

    try:
        req = payouts.create_payout_request(current_user, data.get("amount"), data.get("account_id"))
    except Exception:
        # Any failure leaves no response to replay; free the key for a retry.
        if idem is not None:
            release_key(idem[1])
        raise

    body = {"ok": True, "payout_request": req.to_dict()}
    if idem is not None:
        store_response(idem[1], body, 201)
    return jsonify(body), 201
