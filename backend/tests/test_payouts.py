from decimal import Decimal

import pytest

from bantuin.errors import Conflict, Forbidden, InsufficientFunds, InvalidStateTransition, ValidationError
from bantuin.extensions import db
from bantuin.models import AuditLog, PayoutAccount, PayoutRequest, PayoutStatus, Wallet, WalletTxn, WalletTxnType
from bantuin.services import payouts
from bantuin.utils.wallets import credit_user


@pytest.fixture
def funded_seller(app, seller):
    credit_user(seller.id, WalletTxnType.ESCROW_RELEASE, "200000", "earnings")
    return seller


@pytest.fixture
def account(funded_seller):
    return payouts.add_payout_account(funded_seller, "BCA", "Sari Wulandari", "1234567890")


def _balance(user_id):
    return Decimal(Wallet.query.filter_by(user_id=user_id).one().balance)


def test_duplicate_account_number_conflicts(app, funded_seller, account):
    with pytest.raises(Conflict):
        payouts.add_payout_account(funded_seller, "BCA", "Sari", "1234 5678 90")
    assert PayoutAccount.query.count() == 1


def test_primary_flag_moves_to_newest_primary(app, funded_seller):
    first = payouts.add_payout_account(funded_seller, "BCA", "Sari", "111", is_primary=True)
    second = payouts.add_payout_account(funded_seller, "BNI", "Sari", "222", is_primary=True)

    assert db.session.get(PayoutAccount, first.id).is_primary is False
    assert db.session.get(PayoutAccount, second.id).is_primary is True


def test_request_debits_wallet_immediately(app, funded_seller, account):
    req = payouts.create_payout_request(funded_seller, "75000", account.id)

    assert req.status == PayoutStatus.PENDING
    assert _balance(funded_seller.id) == Decimal("125000.00")
    debit = WalletTxn.query.filter_by(payout_request_id=req.id).one()
    assert debit.type == WalletTxnType.PAYOUT_REQUEST
    assert Decimal(debit.amount) == Decimal("-75000.00")


def test_request_limits(app, funded_seller, account, make_user):
    with pytest.raises(ValidationError):
        payouts.create_payout_request(funded_seller, "49999.99", account.id)
    with pytest.raises(InsufficientFunds):
        payouts.create_payout_request(funded_seller, "200000.01", account.id)

    other = make_user()
    with pytest.raises(Forbidden):
        payouts.create_payout_request(other, "60000", account.id)

    assert PayoutRequest.query.count() == 0
    assert _balance(funded_seller.id) == Decimal("200000.00")


def test_reject_restores_exact_amount(app, admin, funded_seller, account):
    req = payouts.create_payout_request(funded_seller, "80000", account.id)

    payouts.reject_payout(admin, req.id, "Account name does not match")

    req = db.session.get(PayoutRequest, req.id)
    assert req.status == PayoutStatus.REJECTED
    assert req.admin_notes == "Account name does not match"
    assert _balance(funded_seller.id) == Decimal("200000.00")
    entries = WalletTxn.query.filter_by(payout_request_id=req.id).order_by(WalletTxn.id.asc()).all()
    assert [e.type for e in entries] == [WalletTxnType.PAYOUT_REQUEST, WalletTxnType.PAYOUT_REJECTED]
    assert sum(Decimal(e.amount) for e in entries) == 0

    with pytest.raises(InvalidStateTransition):
        payouts.reject_payout(admin, req.id, "again")
    with pytest.raises(InvalidStateTransition):
        payouts.approve_payout(admin, req.id)


def test_reject_requires_reason(app, admin, funded_seller, account):
    req = payouts.create_payout_request(funded_seller, "80000", account.id)
    with pytest.raises(ValidationError):
        payouts.reject_payout(admin, req.id, "   ")


def test_approve_completes_without_ledger_effect(app, admin, funded_seller, account):
    req = payouts.create_payout_request(funded_seller, "100000", account.id)
    txns_before = WalletTxn.query.count()

    payouts.approve_payout(admin, req.id)

    req = db.session.get(PayoutRequest, req.id)
    assert req.status == PayoutStatus.COMPLETED
    assert req.processed_at is not None
    assert WalletTxn.query.count() == txns_before
    assert _balance(funded_seller.id) == Decimal("100000.00")
    assert AuditLog.query.filter_by(action="payout_approved", target_id=req.id).count() == 1
    assert payouts.list_pending_payouts() == []


def test_account_with_pending_request_cannot_be_removed(app, funded_seller, account, make_user):
    payouts.create_payout_request(funded_seller, "60000", account.id)

    with pytest.raises(ValidationError):
        payouts.remove_payout_account(funded_seller, account.id)
    with pytest.raises(Forbidden):
        payouts.remove_payout_account(make_user(), account.id)

    spare = payouts.add_payout_account(funded_seller, "BRI", "Sari", "999")
    payouts.remove_payout_account(funded_seller, spare.id)
    assert db.session.get(PayoutAccount, spare.id) is None
