from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import CANCEL_REASON, REQUIREMENTS, REVISION_NOTE, deliver, order_payment
from bantuin.errors import (
    Forbidden,
    InvalidStateTransition,
    NotFound,
    RevisionQuotaExhausted,
    ValidationError,
)
from bantuin.extensions import db
from bantuin.models import (
    Notification,
    Order,
    OrderStatus,
    PaymentStatus,
    Service,
    ServiceStatus,
    User,
    Wallet,
    WalletTxn,
    WalletTxnType,
)
from bantuin.models.order import TRANSITIONS, can_transition
from bantuin.services import orders


def _balance(user_id):
    w = Wallet.query.filter_by(user_id=user_id).first()
    return Decimal(w.balance) if w else Decimal("0")


def test_create_order_snapshots_service(app, buyer, seller, service):
    order = orders.create_order(buyer, service.id, REQUIREMENTS, attachments=["https://files.test/brief.pdf"])

    service.price = Decimal("250000")
    service.title = "Premium logo design"
    service.revisions = 5
    db.session.commit()

    order = db.session.get(Order, order.id)
    assert order.status == OrderStatus.DRAFT
    assert order.title == "Logo design"
    assert Decimal(order.price) == Decimal("100000.00")
    assert order.max_revisions == 2
    assert order.attachments == ["https://files.test/brief.pdf"]
    assert order.due_date > datetime.utcnow() + timedelta(days=2)
    assert Notification.query.filter_by(user_id=seller.id, type="ORDER").count() == 1


def test_create_order_validation(app, buyer, seller, service, make_service):
    with pytest.raises(ValidationError):
        orders.create_order(seller, service.id, REQUIREMENTS)
    with pytest.raises(ValidationError):
        orders.create_order(buyer, service.id, "too short")
    with pytest.raises(ValidationError):
        orders.create_order(buyer, service.id, REQUIREMENTS, attachments=[f"https://f.test/{i}" for i in range(11)])
    with pytest.raises(ValidationError):
        orders.create_order(buyer, service.id, REQUIREMENTS, custom_deadline="2001-01-01T00:00:00Z")
    with pytest.raises(NotFound):
        orders.create_order(buyer, 9999, REQUIREMENTS)

    paused = make_service(seller)
    paused.status = "PAUSED"
    db.session.commit()
    with pytest.raises(ValidationError):
        orders.create_order(buyer, paused.id, REQUIREMENTS)


def test_custom_deadline_is_kept(app, buyer, service):
    deadline = (datetime.utcnow() + timedelta(days=10)).replace(microsecond=0)
    order = orders.create_order(buyer, service.id, REQUIREMENTS, custom_deadline=deadline.isoformat() + "Z")
    assert db.session.get(Order, order.id).due_date == deadline


def test_transition_table_has_no_skips():
    assert not can_transition(OrderStatus.DRAFT, OrderStatus.PAID_ESCROW)
    assert not can_transition(OrderStatus.WAITING_PAYMENT, OrderStatus.IN_PROGRESS)
    assert not can_transition(OrderStatus.PAID_ESCROW, OrderStatus.COMPLETED)
    for terminal in OrderStatus.TERMINAL:
        assert terminal not in TRANSITIONS


def test_full_happy_path_releases_ninety_percent(app, buyer, seller, service, paid_order):
    order = paid_order()
    assert order.status == OrderStatus.PAID_ESCROW

    orders.start_work(order.id, seller)
    deliver(order, seller)
    orders.approve_work(order.id, buyer)

    order = db.session.get(Order, order.id)
    assert order.status == OrderStatus.COMPLETED
    assert order.completed_at is not None
    assert _balance(seller.id) == Decimal("90000.00")
    txn = WalletTxn.query.one()
    assert txn.type == WalletTxnType.ESCROW_RELEASE
    assert txn.order_id == order.id
    assert db.session.get(Service, service.id).total_orders == 1
    assert db.session.get(User, seller.id).total_orders_completed == 1


def test_only_the_right_party_may_act(app, buyer, seller, make_user, paid_order):
    order = paid_order()
    stranger = make_user()

    with pytest.raises(Forbidden):
        orders.start_work(order.id, buyer)
    with pytest.raises(NotFound):
        orders.start_work(order.id, stranger)
    with pytest.raises(NotFound):
        orders.get_order(order.id, stranger)

    orders.start_work(order.id, seller)
    with pytest.raises(Forbidden):
        orders.deliver_work(order.id, buyer, "Delivering on behalf", ["https://x.test/a"])


def test_out_of_order_actions_are_rejected(app, buyer, seller, new_order, paid_order):
    draft = new_order()
    with pytest.raises(InvalidStateTransition):
        orders.start_work(draft.id, seller)

    order = paid_order()
    with pytest.raises(InvalidStateTransition):
        orders.approve_work(order.id, buyer)
    with pytest.raises(InvalidStateTransition):
        deliver(order, seller)
    assert db.session.get(Order, order.id).status == OrderStatus.PAID_ESCROW


def test_revision_quota(app, buyer, seller, paid_order):
    order = paid_order()
    orders.start_work(order.id, seller)

    for expected in (1, 2):
        deliver(order, seller)
        orders.request_revision(order.id, buyer, REVISION_NOTE)
        assert db.session.get(Order, order.id).revision_count == expected

    deliver(order, seller)
    with pytest.raises(RevisionQuotaExhausted):
        orders.request_revision(order.id, buyer, REVISION_NOTE)

    order = db.session.get(Order, order.id)
    assert order.status == OrderStatus.DELIVERED
    assert order.revision_count == 2
    assert len(order.revision_notes) == 2


def test_delivery_validation(app, seller, paid_order):
    order = paid_order()
    orders.start_work(order.id, seller)

    with pytest.raises(ValidationError):
        orders.deliver_work(order.id, seller, "short", ["https://x.test/a"])
    with pytest.raises(ValidationError):
        orders.deliver_work(order.id, seller, "Here is the final result.", [])
    with pytest.raises(ValidationError):
        orders.deliver_work(order.id, seller, "Here is the final result.", "https://x.test/a")


def test_buyer_cancel_of_paid_order_refunds_full_price(app, buyer, seller, paid_order):
    order = paid_order()

    orders.cancel_order(order.id, buyer, CANCEL_REASON, "buyer")

    order = db.session.get(Order, order.id)
    assert order.status == OrderStatus.CANCELLED
    assert order.cancellation_reason == CANCEL_REASON
    assert _balance(buyer.id) == Decimal("100000.00")
    refund = WalletTxn.query.one()
    assert refund.type == WalletTxnType.ESCROW_REFUND
    assert refund.payment_id == order_payment(order.id).id
    assert Notification.query.filter_by(user_id=buyer.id, type="WALLET").count() == 1


def test_seller_cancel_only_from_paid_escrow(app, buyer, seller, new_order, paid_order):
    draft = new_order()
    with pytest.raises(InvalidStateTransition):
        orders.cancel_order(draft.id, seller, CANCEL_REASON, "seller")

    order = paid_order()
    orders.cancel_order(order.id, seller, CANCEL_REASON, "seller")
    assert db.session.get(Order, order.id).status == OrderStatus.CANCELLED
    assert _balance(buyer.id) == Decimal("100000.00")


def test_unpaid_cancel_moves_no_money(app, buyer, seller, gateway, new_order):
    order = new_order()
    orders.confirm_order(order.id, buyer)

    orders.cancel_order(order.id, buyer, CANCEL_REASON, "buyer")

    assert order_payment(order.id).status == PaymentStatus.CANCELLED
    assert WalletTxn.query.count() == 0


def test_cancel_after_work_started_requires_dispute(app, buyer, seller, paid_order):
    order = paid_order()
    orders.start_work(order.id, seller)

    with pytest.raises(InvalidStateTransition):
        orders.cancel_order(order.id, buyer, CANCEL_REASON, "buyer")
    with pytest.raises(ValidationError):
        orders.cancel_order(order.id, buyer, "short", "buyer")
    assert WalletTxn.query.count() == 0


def test_progress_updates_only_while_working(app, buyer, seller, paid_order):
    order = paid_order()
    with pytest.raises(InvalidStateTransition):
        orders.add_progress(order.id, seller, "Sketches")

    orders.start_work(order.id, seller)
    progress = orders.add_progress(order.id, seller, "Sketches", "Three concepts", ["https://x.test/1.png"])

    assert progress.order_id == order.id
    assert any(e.get("event") == "PROGRESS" for e in orders.order_timeline(order.id))
    with pytest.raises(Forbidden):
        orders.add_progress(order.id, buyer, "Not mine")


def test_list_orders_filters_and_paginates(app, buyer, seller, make_service, new_order):
    cheap = make_service(seller, price="60000", title="Banner design")
    first = new_order()
    second = new_order(cheap)

    as_buyer = orders.list_orders(buyer, role="buyer", sort_by="price_low")
    assert [o["id"] for o in as_buyer["data"]] == [second.id, first.id]
    assert as_buyer["pagination"] == {"total": 2, "page": 1, "limit": 10, "total_pages": 1}

    as_worker = orders.list_orders(seller, role="worker", search="banner")
    assert [o["id"] for o in as_worker["data"]] == [second.id]

    paged = orders.list_orders(buyer, limit=1, page=2, sort_by="oldest")
    assert [o["id"] for o in paged["data"]] == [second.id]
    assert orders.list_orders(buyer, limit=500)["pagination"]["limit"] == 100

    with pytest.raises(ValidationError):
        orders.list_orders(buyer, status="LOST")


def test_notification_failure_does_not_roll_back_order(app, buyer, service):
    with patch("bantuin.utils.notify.Notification", side_effect=SQLAlchemyError("boom")):
        order = orders.create_order(buyer, service.id, REQUIREMENTS)

    assert db.session.get(Order, order.id) is not None
    assert Notification.query.count() == 0


def test_any_notification_error_is_contained(app, buyer, service):
    with patch("bantuin.utils.notify.Notification", side_effect=RuntimeError("sink down")):
        order = orders.create_order(buyer, service.id, REQUIREMENTS)

    assert db.session.get(Order, order.id).status == OrderStatus.DRAFT
    assert Notification.query.count() == 0


def test_services_of_banned_or_unreviewed_sellers_cannot_be_ordered(app, buyer, seller, make_service):
    pending = make_service(seller, status=ServiceStatus.PENDING)
    with pytest.raises(ValidationError):
        orders.create_order(buyer, pending.id, REQUIREMENTS)

    live = make_service(seller)
    seller.status = "banned"
    db.session.commit()
    with pytest.raises(ValidationError):
        orders.create_order(buyer, live.id, REQUIREMENTS)
