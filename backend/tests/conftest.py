import hashlib
from decimal import Decimal
from unittest.mock import patch

import pytest
from flask import g

from bantuin import create_app
from bantuin.extensions import db
from bantuin.models import Order, Service, ServiceStatus, User
from bantuin.services import orders, payments
from bantuin.utils.jwt_utils import create_access_token

SERVER_KEY = "SB-Mid-server-unit-test"

REQUIREMENTS = "Please design a logo for my coffee shop, brown and cream palette."
DELIVERY_NOTE = "Here are the final logo files."
REVISION_NOTE = "Could you make the cup outline thicker and the text larger?"
CANCEL_REASON = "I no longer need this work, sorry for the trouble."
DISPUTE_REASON = "The delivered files do not match the agreed requirements."


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "AUTO_CREATE_TABLES": False,
        "SECRET_KEY": "unit-test-secret-key-0123456789",
        "MIDTRANS_SERVER_KEY": SERVER_KEY,
        "MIDTRANS_WEBHOOK_STRICT": True,
        "FRONTEND_URL": "https://bantuin.test",
        "PLATFORM_FEE_RATE": "0.10",
        "PAYOUT_MIN_AMOUNT": "50000",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    # The app fixture holds one app context open for the whole test, so drop
    # the user Flask-Login cached on g by the previous request.
    @app.before_request
    def _reset_login_user():
        g.pop("_login_user", None)

    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role="USER", full_name="Budi Santoso", phone_number="+6281234567899"):
        counter["n"] += 1
        u = User(
            email=f"user{counter['n']}@bantuin.test",
            full_name=full_name,
            phone_number=phone_number,
            role=role,
        )
        db.session.add(u)
        db.session.commit()
        return u

    return _make


@pytest.fixture
def buyer(make_user):
    return make_user(full_name="Budi Santoso")


@pytest.fixture
def seller(make_user):
    return make_user(full_name="Sari Wulandari")


@pytest.fixture
def admin(make_user):
    return make_user(role="ADMIN", full_name="Admin Bantuin")


@pytest.fixture
def make_service(app):
    def _make(seller, price="100000", revisions=2, delivery_time=3, title="Logo design", status=ServiceStatus.ACTIVE):
        svc = Service(
            seller_id=seller.id,
            title=title,
            description="Professional logo design",
            category="design",
            price=Decimal(price),
            delivery_time=delivery_time,
            revisions=revisions,
            status=status,
            is_active=status == ServiceStatus.ACTIVE,
        )
        db.session.add(svc)
        db.session.commit()
        return svc

    return _make


@pytest.fixture
def service(make_service, seller):
    return make_service(seller)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def sign(order_id, status_code, gross_amount, key=SERVER_KEY):
    return hashlib.sha512(f"{order_id}{status_code}{gross_amount}{key}".encode("utf-8")).hexdigest()


def webhook_payload(payment, transaction_status="settlement", status_code="200", gross_amount=None, **extra):
    gross = gross_amount if gross_amount is not None else f"{Decimal(payment.amount):.2f}"
    body = {
        "order_id": payment.gateway_order_id,
        "transaction_status": transaction_status,
        "status_code": status_code,
        "gross_amount": gross,
        "transaction_id": f"trx-{payment.gateway_order_id}",
        "payment_type": "bank_transfer",
        "signature_key": sign(payment.gateway_order_id, status_code, gross),
    }
    body.update(extra)
    return body


@pytest.fixture
def gateway():
    """Stand-in for the Snap API; records every payload it receives."""
    calls = []

    def _create(payload):
        calls.append(payload)
        return {"token": f"snap-token-{len(calls)}", "redirect_url": f"https://snap.test/{len(calls)}"}

    with patch("bantuin.utils.midtrans_client.create_transaction", side_effect=_create):
        yield calls


@pytest.fixture
def new_order(app, buyer, service):
    def _make(svc=None, by=None):
        return orders.create_order(by or buyer, (svc or service).id, REQUIREMENTS)

    return _make


@pytest.fixture
def paid_order(app, buyer, gateway, new_order):
    """An order that went through checkout and a settled Midtrans notification."""

    def _make(svc=None, by=None):
        order = new_order(svc, by)
        orders.confirm_order(order.id, by or buyer)
        payment = order_payment(order.id)
        payments.handle_webhook(webhook_payload(payment))
        return db.session.get(Order, order.id)

    return _make


def order_payment(order_id):
    from bantuin.models import Payment

    return Payment.query.filter_by(order_id=order_id).one()


def deliver(order, seller):
    return orders.deliver_work(order.id, seller, DELIVERY_NOTE, ["https://files.test/logo.zip"])
