"""Order lifecycle: creation, payment hand-off, fulfilment, revision, completion, cancellation.

Every operation that moves money runs its state change and ledger entries in
one ``atomic()`` unit with the order row locked.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from bantuin.errors import (
    Forbidden,
    InvalidStateTransition,
    NotFound,
    RevisionQuotaExhausted,
    ValidationError,
)
from bantuin.extensions import db
from bantuin.models import (
    AuditLog,
    Order,
    OrderEvent,
    OrderProgress,
    OrderStatus,
    Payment,
    PaymentStatus,
    Service,
    User,
    WalletTxnType,
)
from bantuin.models.order import can_transition
from bantuin.utils.atomic import atomic, lock
from bantuin.utils.commission import seller_share
from bantuin.utils.notify import notify, short_ref
from bantuin.utils.wallets import credit_user

MAX_ATTACHMENTS = 10
MAX_PAGE_SIZE = 100

SORTS = {
    "newest": (Order.created_at.desc(), Order.id.desc()),
    "oldest": (Order.created_at.asc(), Order.id.asc()),
    "deadline": (Order.due_date.asc(), Order.id.asc()),
    "price_high": (Order.price.desc(), Order.id.desc()),
    "price_low": (Order.price.asc(), Order.id.asc()),
}


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def require_text(value, field: str, min_len: int, max_len: int) -> str:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = (value or "").strip()
    if len(text) < min_len:
        raise ValidationError(f"{field} must be at least {min_len} characters")
    if len(text) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return text


def require_urls(value, field: str, min_items: int, max_items: int) -> list[str]:
    if value is None:
        value = []
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValidationError(f"{field} must be a list of URLs")
    if len(value) < min_items:
        raise ValidationError(f"{field} needs at least {min_items} item(s)")
    if len(value) > max_items:
        raise ValidationError(f"{field} allows at most {max_items} items")
    return [v.strip() for v in value]


def _parse_deadline(value) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("custom_deadline must be an ISO-8601 datetime")
    if parsed.tzinfo is not None:
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    return parsed


def load_locked_order(order_id: int) -> Order:
    order = lock(Order.query.filter_by(id=int(order_id))).first()
    if order is None:
        raise NotFound("Order not found")
    return order


def party_role(order: Order, user: User) -> str | None:
    if int(order.buyer_id) == int(user.id):
        return "buyer"
    if order.seller_id == int(user.id):
        return "seller"
    return None


def _require_role(order: Order, user: User, role: str) -> None:
    actual = party_role(order, user)
    if actual is None:
        raise NotFound("Order not found")
    if actual != role:
        raise Forbidden(f"Only the {role} can do this")


def transition(order: Order, target: str, *, actor_id: int | None, note: str = "") -> None:
    current = order.status
    if not can_transition(current, target):
        raise InvalidStateTransition(f"Cannot move order from {current} to {target}")
    order.status = target
    order.updated_at = datetime.utcnow()
    db.session.add(
        OrderEvent(
            order_id=order.id,
            actor_user_id=actor_id,
            event=f"{current}->{target}",
            from_status=current,
            to_status=target,
            note=(note or "")[:250],
        )
    )
    current_app.logger.info("Order %s %s -> %s (actor=%s)", order.id, current, target, actor_id)


def _link(order: Order, role: str) -> str:
    return f"/{role}/orders/{order.id}"


# ---------------------------------------------------------------------------
# creation and payment
# ---------------------------------------------------------------------------

def create_order(buyer: User, service_id, requirements, attachments=None, custom_deadline=None) -> Order:
    requirements = require_text(requirements, "requirements", 20, 2000)
    attachments = require_urls(attachments, "attachments", 0, MAX_ATTACHMENTS)
    deadline = _parse_deadline(custom_deadline)

    try:
        service = db.session.get(Service, int(service_id))
    except (TypeError, ValueError):
        raise ValidationError("service_id is required")
    if service is None:
        raise NotFound("Service not found")
    seller = db.session.get(User, int(service.seller_id))
    if not service.is_orderable or seller is None or not seller.is_active:
        raise ValidationError("Service is not available for ordering")
    if int(service.seller_id) == int(buyer.id):
        raise ValidationError("You cannot order your own service")

    now = datetime.utcnow()
    if deadline is not None and deadline <= now:
        raise ValidationError("custom_deadline must be in the future")

    with atomic():
        order = Order(
            service_id=service.id,
            buyer_id=buyer.id,
            title=service.title,
            price=Decimal(service.price),
            delivery_time=int(service.delivery_time),
            max_revisions=int(service.revisions or 0),
            requirements=requirements,
            attachments=attachments,
            due_date=deadline or now + timedelta(days=int(service.delivery_time)),
            status=OrderStatus.DRAFT,
        )
        db.session.add(order)
        db.session.flush()
        db.session.add(
            OrderEvent(order_id=order.id, actor_user_id=buyer.id, event="CREATED", to_status=OrderStatus.DRAFT)
        )
        notify(
            service.seller_id,
            f"New order {short_ref(order.id)} is waiting for payment.",
            _link(order, "seller"),
            "ORDER",
        )

    current_app.logger.info("Order %s created by buyer %s for service %s", order.id, buyer.id, service.id)
    return order


def confirm_order(order_id: int, buyer: User) -> tuple[Order, dict]:
    """Move the order to WAITING_PAYMENT and open a payment session for it."""
    from bantuin.services.payments import create_payment_session

    with atomic():
        order = load_locked_order(order_id)
        _require_role(order, buyer, "buyer")
        if order.status == OrderStatus.DRAFT:
            transition(order, OrderStatus.WAITING_PAYMENT, actor_id=buyer.id)
        elif order.status != OrderStatus.WAITING_PAYMENT:
            raise InvalidStateTransition("Order is not awaiting payment")

    # Gateway call happens outside any open transaction.
    session = create_payment_session(order, buyer)
    return order, session


def mark_order_paid(order: Order, payment: Payment) -> None:
    """Apply a settled payment to a locked order. Must run inside atomic()."""
    now = datetime.utcnow()

    if order.status == OrderStatus.CANCELLED:
        # Money arrived after the buyer cancelled: keep the order closed and
        # give the funds back.
        if order.is_paid:
            return
        order.is_paid = True
        order.paid_at = now
        credit_user(
            order.buyer_id,
            WalletTxnType.ESCROW_REFUND,
            Decimal(payment.amount),
            f"Refund for cancelled order {short_ref(order.id)}",
            order_id=order.id,
            payment_id=payment.id,
        )
        AuditLog.record(
            "settlement_after_cancel",
            target_type="order",
            target_id=int(order.id),
            payment_id=int(payment.id),
            amount=str(payment.amount),
        )
        notify(
            order.buyer_id,
            f"Payment for cancelled order {short_ref(order.id)} was refunded to your wallet.",
            "/wallet",
            "WALLET",
        )
        current_app.logger.warning("Settlement for cancelled order %s refunded to buyer", order.id)
        return

    if order.status == OrderStatus.DRAFT:
        transition(order, OrderStatus.WAITING_PAYMENT, actor_id=None, note="settled before confirmation")
    if order.status != OrderStatus.WAITING_PAYMENT:
        current_app.logger.warning("Order %s already past payment (%s); settlement ignored", order.id, order.status)
        return

    order.is_paid = True
    order.paid_at = now
    transition(order, OrderStatus.PAID_ESCROW, actor_id=None, note=f"payment {payment.transaction_id or payment.id}")
    notify(
        order.seller_id,
        f"New order {short_ref(order.id)} has been paid. You can start working.",
        _link(order, "seller"),
        "ORDER",
    )


# ---------------------------------------------------------------------------
# fulfilment
# ---------------------------------------------------------------------------

def start_work(order_id: int, seller: User) -> Order:
    with atomic():
        order = load_locked_order(order_id)
        _require_role(order, seller, "seller")
        transition(order, OrderStatus.IN_PROGRESS, actor_id=seller.id)
        notify(order.buyer_id, f"Work on order {short_ref(order.id)} has started.", _link(order, "buyer"), "ORDER")
    return order


def deliver_work(order_id: int, seller: User, delivery_note, delivery_files) -> Order:
    delivery_note = require_text(delivery_note, "delivery_note", 10, 1000)
    delivery_files = require_urls(delivery_files, "delivery_files", 1, 10)

    with atomic():
        order = load_locked_order(order_id)
        _require_role(order, seller, "seller")
        transition(order, OrderStatus.DELIVERED, actor_id=seller.id)
        order.delivery_note = delivery_note
        order.delivery_files = delivery_files
        order.delivered_at = datetime.utcnow()
        notify(order.buyer_id, f"Work for order {short_ref(order.id)} has been delivered!", _link(order, "buyer"), "ORDER")
    return order


def request_revision(order_id: int, buyer: User, revision_note) -> Order:
    revision_note = require_text(revision_note, "revision_note", 20, 1000)

    with atomic():
        order = load_locked_order(order_id)
        _require_role(order, buyer, "buyer")
        if order.status != OrderStatus.DELIVERED:
            raise InvalidStateTransition("Revisions can only be requested on delivered work")
        if int(order.revision_count or 0) >= int(order.max_revisions or 0):
            raise RevisionQuotaExhausted()

        order.revision_count = int(order.revision_count or 0) + 1
        order.revision_notes = list(order.revision_notes or []) + [
            {"note": revision_note, "requested_at": datetime.utcnow().isoformat()}
        ]
        transition(order, OrderStatus.REVISION, actor_id=buyer.id, note=f"revision {order.revision_count}")
        notify(
            order.seller_id,
            f"Buyer requested a revision on order {short_ref(order.id)}.",
            _link(order, "seller"),
            "ORDER",
        )
    return order


def approve_work(order_id: int, buyer: User) -> Order:
    with atomic():
        order = load_locked_order(order_id)
        _require_role(order, buyer, "buyer")
        if order.status != OrderStatus.DELIVERED:
            raise InvalidStateTransition("Only delivered work can be approved")
        complete_order(order, actor_id=buyer.id)
    return order


def complete_order(
    order: Order,
    *,
    actor_id: int | None,
    txn_type: str = WalletTxnType.ESCROW_RELEASE,
    dispute_id: int | None = None,
) -> None:
    """Close a locked order and release the seller's share from escrow."""
    with atomic():
        transition(order, OrderStatus.COMPLETED, actor_id=actor_id)
        order.completed_at = datetime.utcnow()

        seller_id = order.seller_id
        Service.query.filter_by(id=order.service_id).update(
            {Service.total_orders: Service.total_orders + 1}, synchronize_session=False
        )
        User.query.filter_by(id=seller_id).update(
            {User.total_orders_completed: User.total_orders_completed + 1}, synchronize_session=False
        )

        share = seller_share(order.price)
        credit_user(
            seller_id,
            txn_type,
            share,
            f"Earnings for order {short_ref(order.id)}",
            order_id=order.id,
            dispute_id=dispute_id,
        )
        notify(
            seller_id,
            f"Order {short_ref(order.id)} is complete. {share} was added to your wallet.",
            "/wallet",
            "WALLET",
        )


# ---------------------------------------------------------------------------
# cancellation
# ---------------------------------------------------------------------------

CANCELLABLE_BY = {
    "buyer": (OrderStatus.DRAFT, OrderStatus.WAITING_PAYMENT, OrderStatus.PAID_ESCROW),
    "seller": (OrderStatus.PAID_ESCROW,),
}


def cancel_order(order_id: int, actor: User, reason, as_role: str) -> Order:
    if as_role not in CANCELLABLE_BY:
        raise ValidationError("Unknown cancelling party")
    reason = require_text(reason, "reason", 20, 500)

    with atomic():
        order = load_locked_order(order_id)
        _require_role(order, actor, as_role)
        if order.status not in CANCELLABLE_BY[as_role]:
            raise InvalidStateTransition(
                f"The {as_role} cannot cancel an order in {order.status}; open a dispute instead"
            )

        payment = lock(Payment.query.filter_by(order_id=order.id)).first()
        if order.is_paid:
            credit_user(
                order.buyer_id,
                WalletTxnType.ESCROW_REFUND,
                Decimal(payment.amount) if payment is not None else Decimal(order.price),
                f"Refund for cancelled order {short_ref(order.id)}",
                order_id=order.id,
                payment_id=payment.id if payment is not None else None,
            )
        elif payment is not None and payment.status == PaymentStatus.PENDING:
            payment.status = PaymentStatus.CANCELLED
            payment.updated_at = datetime.utcnow()

        transition(order, OrderStatus.CANCELLED, actor_id=actor.id, note=reason[:250])
        order.cancelled_at = datetime.utcnow()
        order.cancellation_reason = reason

        other = order.seller_id if as_role == "buyer" else order.buyer_id
        notify(
            other,
            f"Order {short_ref(order.id)} was cancelled by the {as_role}.",
            _link(order, "seller" if as_role == "buyer" else "buyer"),
            "ORDER",
        )
        if order.is_paid:
            notify(order.buyer_id, f"Refund for order {short_ref(order.id)} was added to your wallet.", "/wallet", "WALLET")
    return order


# ---------------------------------------------------------------------------
# progress and queries
# ---------------------------------------------------------------------------

def add_progress(order_id: int, seller: User, title, description=None, images=None) -> OrderProgress:
    title = require_text(title, "title", 3, 160)
    description = (description or "").strip()[:2000] or None
    images = require_urls(images, "images", 0, MAX_ATTACHMENTS)

    with atomic():
        order = load_locked_order(order_id)
        _require_role(order, seller, "seller")
        if order.status not in (OrderStatus.IN_PROGRESS, OrderStatus.REVISION):
            raise InvalidStateTransition("Progress can only be posted while work is underway")
        progress = OrderProgress(order_id=order.id, title=title, description=description, images=images)
        db.session.add(progress)
        db.session.flush()
        notify(
            order.buyer_id,
            f"New update on order {short_ref(order.id)}: {title}",
            _link(order, "buyer"),
            "ORDER",
        )
    return progress


def get_order(order_id: int, user: User) -> Order:
    order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFound("Order not found")
    if party_role(order, user) is None and not user.is_admin:
        raise NotFound("Order not found")
    return order


def list_orders(user: User, *, role=None, status=None, search=None, page=1, limit=10, sort_by="newest") -> dict:
    try:
        page = max(1, int(page or 1))
        limit = max(1, min(int(limit or 10), MAX_PAGE_SIZE))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    if status and status not in OrderStatus.ALL:
        raise ValidationError(f"Unknown status: {status}")

    q = Order.query.join(Service, Service.id == Order.service_id)
    if role == "buyer":
        q = q.filter(Order.buyer_id == user.id)
    elif role == "worker":
        q = q.filter(Service.seller_id == user.id)
    else:
        q = q.filter(or_(Order.buyer_id == user.id, Service.seller_id == user.id))
    if status:
        q = q.filter(Order.status == status)
    if search:
        q = q.filter(Order.title.ilike(f"%{search.strip()}%"))

    total = q.count()
    rows = q.order_by(*SORTS.get(sort_by or "newest", SORTS["newest"])).offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [o.to_dict() for o in rows],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def order_timeline(order_id: int) -> list[dict]:
    rows = OrderEvent.query.filter_by(order_id=int(order_id)).order_by(OrderEvent.id.asc()).all()
    progress = OrderProgress.query.filter_by(order_id=int(order_id)).order_by(OrderProgress.id.asc()).all()
    return [e.to_dict() for e in rows] + [dict(p.to_dict(), event="PROGRESS") for p in progress]
