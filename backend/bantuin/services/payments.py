from __future__ import annotations

import re
import time
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bantuin.errors import (
    DuplicateWebhook,
    InvalidStateTransition,
    NotFound,
    SignatureMismatch,
    ValidationError,
)
from bantuin.extensions import db
from bantuin.models import AuditLog, Order, Payment, PaymentStatus, User
from bantuin.services.orders import mark_order_paid
from bantuin.utils import midtrans_client
from bantuin.utils.atomic import atomic, lock

ATTEMPT_SEPARATOR = "-T"
DEFAULT_PHONE = "081234567890"
DEFAULT_ITEM_NAME = "Jasa Bantuin"

_NON_ASCII = re.compile(r"[^\x00-\x7F]")


def attempt_id(order_id: int) -> str:
    """Gateway-side id for one payment attempt; Midtrans refuses reused ids."""
    return f"{int(order_id)}{ATTEMPT_SEPARATOR}{int(time.time() * 1000)}"


def order_id_from_attempt(gateway_order_id: str) -> int:
    raw = str(gateway_order_id or "")
    idx = raw.find(ATTEMPT_SEPARATOR)
    head = raw[:idx] if idx != -1 else raw
    try:
        return int(head)
    except ValueError:
        raise ValidationError(f"Malformed order_id: {raw!r}")


def _split_name(full_name: str) -> tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "Customer", ""
    return parts[0][:20], " ".join(parts[1:])[:20]


def charge_amount(price) -> Decimal:
    """Whole-rupiah amount sent to Snap; Midtrans rejects fractional IDR."""
    return Decimal(price).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def build_snap_payload(order: Order, buyer: User, gateway_order_id: str) -> dict:
    amount = int(charge_amount(order.price))
    if amount <= 0:
        raise ValidationError("Invalid order amount")

    item_name = _NON_ASCII.sub("", order.title or "").strip()[:50] or DEFAULT_ITEM_NAME
    phone = (buyer.phone_number or DEFAULT_PHONE).replace("+", "").strip()
    first_name, last_name = _split_name(buyer.full_name)
    frontend = (current_app.config.get("FRONTEND_URL") or "").rstrip("/")

    return {
        "transaction_details": {"order_id": gateway_order_id, "gross_amount": amount},
        "customer_details": {
            "first_name": first_name,
            "last_name": last_name,
            "email": buyer.email,
            "phone": phone,
        },
        "item_details": [
            {"id": str(order.service_id)[:50], "price": amount, "quantity": 1, "name": item_name},
        ],
        "enabled_payments": list(midtrans_client.ENABLED_PAYMENTS),
        "callbacks": {"finish": f"{frontend}/buyer/orders/{order.id}"},
    }


def create_payment_session(order: Order, buyer: User) -> dict:
    """Open a Snap checkout for the order and upsert its Payment row.

    The gateway is called once; on failure PaymentGatewayError propagates and
    the caller may simply retry.
    """
    if not buyer.email:
        raise ValidationError("Buyer email is required for payment")

    gateway_order_id = attempt_id(order.id)
    payload = build_snap_payload(order, buyer, gateway_order_id)
    session = midtrans_client.create_transaction(payload)

    with atomic():
        payment = lock(Payment.query.filter_by(order_id=order.id)).first()
        if payment is None:
            try:
                with db.session.begin_nested():
                    payment = Payment(order_id=order.id, amount=charge_amount(order.price), gateway="midtrans")
                    db.session.add(payment)
            except IntegrityError:
                payment = lock(Payment.query.filter_by(order_id=order.id)).one()
        if payment.status == PaymentStatus.SETTLEMENT:
            raise InvalidStateTransition("Order is already paid")

        # Stored as charged so the notification gross_amount matches it exactly.
        payment.amount = charge_amount(order.price)
        payment.status = PaymentStatus.PENDING
        payment.gateway_token = session["token"]
        payment.gateway_redirect_url = session["redirect_url"]
        payment.gateway_order_id = gateway_order_id
        payment.transaction_id = None
        payment.updated_at = datetime.utcnow()

    current_app.logger.info("Payment session %s opened for order %s", gateway_order_id, order.id)
    return {"token": session["token"], "redirect_url": session["redirect_url"]}


def map_status(transaction_status: str, fraud_status: str | None, current: str) -> str:
    ts = (transaction_status or "").strip().lower()
    if ts == "capture":
        fraud = (fraud_status or "").strip().lower()
        if fraud == "accept":
            return PaymentStatus.SETTLEMENT
        if fraud == "challenge":
            return PaymentStatus.PENDING
        return current
    if ts == "settlement":
        return PaymentStatus.SETTLEMENT
    if ts in ("cancel", "deny", "expire"):
        return PaymentStatus.CANCELLED
    if ts == "pending":
        return PaymentStatus.PENDING
    return current


def _record_signature_mismatch(gateway_order_id: str, order_id: int, strict: bool) -> None:
    current_app.logger.warning(
        "Webhook signature mismatch for %s (order %s, strict=%s)", gateway_order_id, order_id, strict
    )
    AuditLog.record(
        "webhook_signature_mismatch",
        target_type="order",
        target_id=order_id,
        gateway_order_id=gateway_order_id,
        strict=strict,
    )
    db.session.commit()


def handle_webhook(payload: dict) -> dict:
    """Apply a Midtrans HTTP notification. Returns the acknowledgement body."""
    payload = payload or {}
    gateway_order_id = str(payload.get("order_id") or "").strip()
    transaction_status = str(payload.get("transaction_status") or "").strip()
    gross_amount = str(payload.get("gross_amount") or "").strip()
    signature_key = str(payload.get("signature_key") or "").strip()
    status_code = str(payload.get("status_code") or "").strip()
    transaction_id = str(payload.get("transaction_id") or "").strip() or None
    payment_type = str(payload.get("payment_type") or "").strip() or None

    if not gateway_order_id or not transaction_status or not gross_amount or not signature_key:
        raise ValidationError("Invalid webhook payload")

    order_id = order_id_from_attempt(gateway_order_id)
    current_app.logger.info(
        "Webhook for order %s (attempt %s): %s", order_id, gateway_order_id, transaction_status
    )

    if not midtrans_client.verify_signature(gateway_order_id, status_code, gross_amount, signature_key):
        strict = bool(current_app.config.get("MIDTRANS_WEBHOOK_STRICT", True))
        _record_signature_mismatch(gateway_order_id, order_id, strict)
        if strict:
            raise SignatureMismatch()

    try:
        gross = Decimal(gross_amount)
    except InvalidOperation:
        raise ValidationError("Invalid gross_amount")

    try:
        with atomic():
            order = lock(Order.query.filter_by(id=order_id)).first()
            payment = lock(Payment.query.filter_by(order_id=order_id)).first()
            if order is None or payment is None:
                raise NotFound("Payment record not found")

            new_status = map_status(transaction_status, payload.get("fraud_status"), payment.status)

            if payment.status == PaymentStatus.SETTLEMENT and new_status == PaymentStatus.SETTLEMENT:
                raise DuplicateWebhook()
            if payment.status == PaymentStatus.SETTLEMENT:
                current_app.logger.warning(
                    "Ignoring %s for settled payment %s", transaction_status, payment.id
                )
                return {"message": "Payment already settled; notification ignored"}
            if gross != Decimal(payment.amount):
                raise ValidationError("gross_amount does not match the payment amount")

            became_settled = new_status == PaymentStatus.SETTLEMENT
            payment.status = new_status
            if transaction_id:
                payment.transaction_id = transaction_id
            if payment_type:
                payment.payment_type = payment_type
            payment.updated_at = datetime.utcnow()
            db.session.flush()

            if became_settled:
                mark_order_paid(order, payment)
    except DuplicateWebhook as e:
        current_app.logger.info("Duplicate settlement for order %s acknowledged", order_id)
        return {"message": e.message}

    current_app.logger.info("Payment for order %s is now %s", order_id, new_status)
    return {"message": f"Payment status updated to {new_status}"}
