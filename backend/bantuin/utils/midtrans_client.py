from __future__ import annotations

import hashlib
import hmac

import requests
from flask import current_app

from bantuin.errors import PaymentGatewayError

SANDBOX_SNAP_URL = "https://app.sandbox.midtrans.com/snap/v1/transactions"
PRODUCTION_SNAP_URL = "https://app.midtrans.com/snap/v1/transactions"

ENABLED_PAYMENTS = [
    "gopay",
    "shopeepay",
    "other_qris",
    "bank_transfer",
    "echannel",
    "bca_va",
    "bni_va",
    "bri_va",
    "permata_va",
    "other_va",
]


def _server_key() -> str:
    return (current_app.config.get("MIDTRANS_SERVER_KEY") or "").strip()


def snap_url() -> str:
    if current_app.config.get("MIDTRANS_IS_PRODUCTION"):
        return PRODUCTION_SNAP_URL
    return SANDBOX_SNAP_URL


def create_transaction(payload: dict) -> dict:
    """Create a Snap transaction. Returns {"token", "redirect_url"}.

    Raises PaymentGatewayError on any transport or gateway failure.
    """
    key = _server_key()
    if not key:
        raise PaymentGatewayError("Payment gateway is not configured")
    try:
        r = requests.post(
            snap_url(),
            json=payload,
            auth=(key, ""),
            headers={"Accept": "application/json"},
            timeout=20,
        )
    except requests.RequestException as e:
        current_app.logger.error("Midtrans request failed: %s", e)
        raise PaymentGatewayError()

    try:
        j = r.json() if r.content else {}
    except ValueError:
        j = {}
    if 200 <= r.status_code < 300 and j.get("token"):
        return {"token": j["token"], "redirect_url": j.get("redirect_url", "")}

    current_app.logger.error(
        "Midtrans rejected transaction %s: HTTP %s %s",
        (payload.get("transaction_details") or {}).get("order_id"),
        r.status_code,
        j.get("error_messages") or j,
    )
    raise PaymentGatewayError()


def expected_signature(order_id: str, status_code: str, gross_amount: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{_server_key()}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_signature(order_id: str, status_code: str, gross_amount: str, signature_key: str | None) -> bool:
    if not _server_key() or not signature_key:
        return False
    digest = expected_signature(order_id, status_code, gross_amount)
    return hmac.compare_digest(digest, str(signature_key).strip().lower())
