from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from bantuin.errors import AlreadyResolved, Conflict, InvalidStateTransition, NotFound, ValidationError
from bantuin.extensions import db
from bantuin.models import (
    AuditLog,
    Dispute,
    DisputeResolution,
    DisputeStatus,
    OrderStatus,
    User,
    WalletTxnType,
)
from bantuin.services import orders as order_service
from bantuin.utils.atomic import atomic, lock
from bantuin.utils.notify import notify, short_ref
from bantuin.utils.wallets import credit_user

DISPUTABLE = (OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED, OrderStatus.REVISION)


def open_dispute(order_id: int, user: User, reason) -> Dispute:
    reason = order_service.require_text(reason, "reason", 20, 1000)

    with atomic():
        order = order_service.load_locked_order(order_id)
        role = order_service.party_role(order, user)
        if role is None:
            raise NotFound("Order not found")
        if order.status not in DISPUTABLE:
            raise InvalidStateTransition(f"Orders in {order.status} cannot be disputed")
        if Dispute.query.filter_by(order_id=order.id).first() is not None:
            raise Conflict("A dispute already exists for this order")

        dispute = Dispute(order_id=order.id, opened_by_id=user.id, reason=reason, status=DisputeStatus.OPEN)
        db.session.add(dispute)
        order_service.transition(order, OrderStatus.DISPUTED, actor_id=user.id, note=reason[:250])
        db.session.flush()

        other = order.seller_id if role == "buyer" else order.buyer_id
        notify(
            other,
            f"A dispute was opened on order {short_ref(order.id)}.",
            f"/orders/{order.id}/dispute",
            "DISPUTE",
        )

    current_app.logger.info("Dispute %s opened on order %s by %s %s", dispute.id, order.id, role, user.id)
    return dispute


def list_open_disputes() -> list[Dispute]:
    return (
        Dispute.query.filter_by(status=DisputeStatus.OPEN)
        .order_by(Dispute.created_at.asc(), Dispute.id.asc())
        .all()
    )


def resolve_dispute(admin: User, dispute_id: int, resolution, admin_notes=None) -> Dispute:
    """Close a dispute by refunding the buyer or releasing escrow to the seller.

    The dispute row is locked for the whole unit, so a second resolution of the
    same dispute waits and then sees RESOLVED.
    """
    if resolution not in DisputeResolution.ALL:
        raise ValidationError(f"resolution must be one of {', '.join(DisputeResolution.ALL)}")
    if admin_notes is not None and not isinstance(admin_notes, str):
        raise ValidationError("admin_notes must be a string")

    with atomic():
        dispute = lock(Dispute.query.filter_by(id=int(dispute_id))).first()
        if dispute is None:
            raise NotFound("Dispute not found")
        if dispute.status != DisputeStatus.OPEN:
            raise AlreadyResolved()

        order = order_service.load_locked_order(dispute.order_id)
        buyer_id, seller_id = int(order.buyer_id), order.seller_id

        dispute.status = DisputeStatus.RESOLVED
        dispute.resolution = resolution
        dispute.admin_notes = (admin_notes or "").strip()[:2000] or None
        dispute.resolved_by_id = admin.id
        dispute.resolved_at = datetime.utcnow()
        dispute.updated_at = dispute.resolved_at

        if resolution == DisputeResolution.REFUND_TO_BUYER:
            order_service.transition(order, OrderStatus.RESOLVED, actor_id=admin.id, note="refunded to buyer")
            credit_user(
                buyer_id,
                WalletTxnType.DISPUTE_REFUND,
                Decimal(order.price),
                f"Dispute refund for order {short_ref(order.id)}",
                order_id=order.id,
                dispute_id=dispute.id,
            )
        else:
            order_service.complete_order(
                order,
                actor_id=admin.id,
                txn_type=WalletTxnType.DISPUTE_RELEASE,
                dispute_id=dispute.id,
            )

        AuditLog.record(
            "dispute_resolved",
            actor_user_id=admin.id,
            target_type="dispute",
            target_id=int(dispute.id),
            order_id=int(order.id),
            resolution=resolution,
        )
        for uid in (buyer_id, seller_id):
            notify(
                uid,
                f"The dispute on order {short_ref(order.id)} has been resolved.",
                f"/orders/{order.id}/dispute",
                "DISPUTE",
            )

    current_app.logger.info("Dispute %s resolved (%s) by admin %s", dispute.id, resolution, admin.id)
    return dispute
