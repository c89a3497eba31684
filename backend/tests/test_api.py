from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from conftest import REQUIREMENTS, auth_headers, order_payment, webhook_payload
from bantuin.models import OrderStatus, PayoutRequest, Wallet, WalletTxnType
from bantuin.services import orders, payouts
from bantuin.utils.wallets import credit_user


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json()["db"] == "ok"


def test_requires_bearer_token(client):
    r = client.get("/api/orders")
    assert r.status_code == 401
    assert r.get_json() == {"ok": False, "error": "unauthorized", "message": "Authentication required"}

    r = client.get("/api/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_order_checkout_and_webhook_over_http(client, buyer, seller, service, gateway):
    r = client.post(
        "/api/orders",
        json={"service_id": service.id, "requirements": REQUIREMENTS},
        headers=auth_headers(buyer),
    )
    assert r.status_code == 201
    order_id = r.get_json()["order"]["id"]

    r = client.post(f"/api/orders/{order_id}/confirm", headers=auth_headers(buyer))
    assert r.status_code == 200
    assert r.get_json()["payment"]["token"] == "snap-token-1"

    body = webhook_payload(order_payment(order_id))
    r = client.post("/api/payments/webhook", json=body)
    assert r.status_code == 200
    assert r.get_json()["message"] == "Payment status updated to SETTLEMENT"

    r = client.post("/api/payments/webhook", json=body)
    assert r.status_code == 200
    assert r.get_json()["message"] == "Payment already processed"

    r = client.get(f"/api/orders/{order_id}", headers=auth_headers(seller))
    data = r.get_json()
    assert data["order"]["status"] == OrderStatus.PAID_ESCROW
    assert data["payment"]["status"] == "SETTLEMENT"
    assert [e["event"] for e in data["timeline"]][-1] == "WAITING_PAYMENT->PAID_ESCROW"


def test_webhook_with_bad_signature_is_401(client, buyer, new_order, gateway):
    order = new_order()
    orders.confirm_order(order.id, buyer)
    body = webhook_payload(order_payment(order.id))
    body["signature_key"] = "deadbeef"

    r = client.post("/api/payments/webhook", json=body)
    assert r.status_code == 401
    assert r.get_json()["error"] == "signature_mismatch"


def test_error_kinds_are_rendered(client, buyer, seller, service):
    r = client.post(
        "/api/orders",
        json={"service_id": service.id, "requirements": "short"},
        headers=auth_headers(buyer),
    )
    assert r.status_code == 400
    assert r.get_json()["error"] == "validation_error"

    r = client.get("/api/orders/999", headers=auth_headers(buyer))
    assert r.status_code == 404
    assert r.get_json()["error"] == "not_found"

    r = client.get("/api/admin/payouts/pending", headers=auth_headers(buyer))
    assert r.status_code == 403
    assert r.get_json()["error"] == "forbidden"


def test_payout_request_is_idempotent(client, seller):
    credit_user(seller.id, WalletTxnType.ESCROW_RELEASE, "150000", "earnings")
    acct = payouts.add_payout_account(seller, "Mandiri", "Sari Wulandari", "5550001")
    headers = dict(auth_headers(seller), **{"Idempotency-Key": "payout-1"})
    body = {"amount": 60000, "account_id": acct.id}

    first = client.post("/api/wallet/payout-requests", json=body, headers=headers)
    again = client.post("/api/wallet/payout-requests", json=body, headers=headers)
    other = client.post("/api/wallet/payout-requests", json={"amount": 70000, "account_id": acct.id}, headers=headers)

    assert first.status_code == 201
    assert again.status_code == 201
    assert again.get_json() == first.get_json()
    assert other.status_code == 409
    assert PayoutRequest.query.count() == 1
    assert Decimal(Wallet.query.filter_by(user_id=seller.id).one().balance) == Decimal("90000.00")


def test_failed_payout_request_releases_idempotency_key(client, seller):
    acct = payouts.add_payout_account(seller, "Mandiri", "Sari Wulandari", "5550001")
    headers = dict(auth_headers(seller), **{"Idempotency-Key": "payout-2"})
    body = {"amount": 60000, "account_id": acct.id}

    r = client.post("/api/wallet/payout-requests", json=body, headers=headers)
    assert r.status_code == 400
    assert r.get_json()["error"] == "insufficient_funds"

    credit_user(seller.id, WalletTxnType.ESCROW_RELEASE, "60000", "earnings")
    r = client.post("/api/wallet/payout-requests", json=body, headers=headers)
    assert r.status_code == 201


def test_wallet_endpoints(client, seller):
    r = client.get("/api/wallet", headers=auth_headers(seller))
    assert r.status_code == 200
    assert r.get_json()["wallet"]["balance"] == 0.0

    credit_user(seller.id, WalletTxnType.ESCROW_RELEASE, "90000", "earnings")
    r = client.get("/api/wallet/history", headers=auth_headers(seller))
    items = r.get_json()["items"]
    assert len(items) == 1
    assert items[0]["balance_after"] == 90000.0


def test_admin_dashboard_and_payout_review(client, admin, seller):
    credit_user(seller.id, WalletTxnType.ESCROW_RELEASE, "100000", "earnings")
    acct = payouts.add_payout_account(seller, "BCA", "Sari", "777")
    req = payouts.create_payout_request(seller, "50000", acct.id)

    r = client.get("/api/admin/payouts/pending", headers=auth_headers(admin))
    assert [p["id"] for p in r.get_json()["items"]] == [req.id]

    r = client.post(f"/api/admin/payouts/{req.id}/reject", json={"reason": "Wrong bank"}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.get_json()["payout_request"]["status"] == "REJECTED"

    stats = client.get("/api/admin/dashboard/stats", headers=auth_headers(admin)).get_json()
    assert stats["total_user_balance"] == 100000.0
    assert stats["total_active_users"] == 1

    income = client.get("/api/admin/dashboard/income-history", headers=auth_headers(admin)).get_json()["items"]
    assert {i["type"] for i in income} == {WalletTxnType.ESCROW_RELEASE, WalletTxnType.PAYOUT_REJECTED}

    r = client.post("/api/admin/wallets/reconcile", headers=auth_headers(admin))
    assert r.get_json()["anomalies"] == 0


def test_service_catalogue_edits_do_not_touch_orders(client, admin, buyer, seller):
    r = client.post(
        "/api/services",
        json={"title": "Website landing page", "price": 300000, "delivery_time": 7, "revisions": 1},
        headers=auth_headers(seller),
    )
    assert r.status_code == 201
    assert r.get_json()["service"]["status"] == "PENDING"
    service_id = r.get_json()["service"]["id"]

    r = client.patch(f"/api/services/{service_id}", json={"status": "ACTIVE"}, headers=auth_headers(seller))
    assert r.status_code == 409
    r = client.post(f"/api/admin/services/{service_id}/approve", headers=auth_headers(admin))
    assert r.get_json()["service"]["status"] == "ACTIVE"

    r = client.post(
        "/api/orders",
        json={"service_id": service_id, "requirements": REQUIREMENTS},
        headers=auth_headers(buyer),
    )
    order_id = r.get_json()["order"]["id"]

    r = client.patch(f"/api/services/{service_id}", json={"price": 450000}, headers=auth_headers(seller))
    assert r.status_code == 200
    r = client.patch(f"/api/services/{service_id}", json={"price": 1}, headers=auth_headers(buyer))
    assert r.status_code == 403

    order = client.get(f"/api/orders/{order_id}", headers=auth_headers(buyer)).get_json()["order"]
    assert order["price"] == 300000.0


def test_service_price_must_be_whole_rupiah(client, seller, service):
    body = {"title": "Website landing page", "price": "300000.50", "delivery_time": 7}
    r = client.post("/api/services", json=body, headers=auth_headers(seller))
    assert r.status_code == 400
    assert r.get_json()["error"] == "validation_error"

    r = client.patch(f"/api/services/{service.id}", json={"price": 99999.99}, headers=auth_headers(seller))
    assert r.status_code == 400


def test_banned_user_is_locked_out(client, admin, buyer):
    r = client.post(f"/api/admin/users/{buyer.id}/ban", headers=auth_headers(admin))
    assert r.get_json()["user"]["status"] == "banned"
    assert client.get("/api/orders", headers=auth_headers(buyer)).status_code == 401

    users = client.get("/api/admin/users?search=budi", headers=auth_headers(admin)).get_json()["data"]
    assert [u["id"] for u in users] == [buyer.id]

    client.post(f"/api/admin/users/{buyer.id}/unban", headers=auth_headers(admin))
    assert client.get("/api/orders", headers=auth_headers(buyer)).status_code == 200


def test_database_failure_releases_idempotency_key(client, seller):
    credit_user(seller.id, WalletTxnType.ESCROW_RELEASE, "100000", "earnings")
    acct = payouts.add_payout_account(seller, "BNI", "Sari Wulandari", "8880001")
    headers = dict(auth_headers(seller), **{"Idempotency-Key": "payout-3"})
    body = {"amount": 60000, "account_id": acct.id}

    with patch("bantuin.services.payouts.create_payout_request", side_effect=SQLAlchemyError("connection lost")):
        r = client.post("/api/wallet/payout-requests", json=body, headers=headers)
    assert r.status_code == 500

    r = client.post("/api/wallet/payout-requests", json=body, headers=headers)
    assert r.status_code == 201
    assert PayoutRequest.query.count() == 1
