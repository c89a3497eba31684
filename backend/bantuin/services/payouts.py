from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bantuin.errors import Conflict, Forbidden, InvalidStateTransition, NotFound, ValidationError
from bantuin.extensions import db
from bantuin.models import AuditLog, PayoutAccount, PayoutRequest, PayoutStatus, User, WalletTxnType
from bantuin.utils.atomic import atomic, lock
from bantuin.utils.commission import as_money
from bantuin.utils.notify import notify
from bantuin.utils.wallets import apply_ledger_entry, credit_user, get_or_create_wallet


def _min_amount() -> Decimal:
    return Decimal(str(current_app.config.get("PAYOUT_MIN_AMOUNT", "50000")))


def _idr(amount) -> str:
    return f"Rp {int(Decimal(amount)):,}".replace(",", ".")


# ---------------------------------------------------------------------------
# payout accounts
# ---------------------------------------------------------------------------

def add_payout_account(user: User, bank_name, account_name, account_number, is_primary=False) -> PayoutAccount:
    bank_name = (bank_name or "").strip()
    account_name = (account_name or "").strip()
    account_number = "".join(str(account_number or "").split())
    if not bank_name or not account_name or not account_number:
        raise ValidationError("bank_name, account_name and account_number are required")
    if not account_number.isdigit() or len(account_number) > 32:
        raise ValidationError("account_number must contain digits only")

    if PayoutAccount.query.filter_by(user_id=user.id, account_number=account_number).first():
        raise Conflict("This account number is already registered")

    acct = PayoutAccount(
        user_id=user.id,
        bank_name=bank_name[:80],
        account_name=account_name[:120],
        account_number=account_number,
        is_primary=bool(is_primary),
    )
    try:
        with atomic():
            if acct.is_primary:
                PayoutAccount.query.filter_by(user_id=user.id).update({PayoutAccount.is_primary: False})
            db.session.add(acct)
            db.session.flush()
    except IntegrityError:
        raise Conflict("This account number is already registered")
    return acct


def list_payout_accounts(user: User) -> list[PayoutAccount]:
    return PayoutAccount.query.filter_by(user_id=user.id).order_by(PayoutAccount.created_at.desc()).all()


def remove_payout_account(user: User, account_id: int) -> None:
    with atomic():
        acct = db.session.get(PayoutAccount, int(account_id))
        if acct is None:
            raise NotFound("Payout account not found")
        if int(acct.user_id) != int(user.id):
            raise Forbidden("You do not own this payout account")
        pending = PayoutRequest.query.filter_by(account_id=acct.id, status=PayoutStatus.PENDING).count()
        if pending:
            raise ValidationError("This account is used by a pending payout request")
        if PayoutRequest.query.filter_by(account_id=acct.id).count():
            raise ValidationError("This account has payout history and cannot be removed")
        db.session.delete(acct)


# ---------------------------------------------------------------------------
# payout requests
# ---------------------------------------------------------------------------

def create_payout_request(user: User, amount, account_id) -> PayoutRequest:
    """Reserve funds for a withdrawal by debiting the wallet immediately."""
    try:
        amount = as_money(amount)
    except ValueError as e:
        raise ValidationError(str(e))
    minimum = _min_amount()
    if amount < minimum:
        raise ValidationError(f"Minimum payout is {_idr(minimum)}")

    with atomic():
        acct = db.session.get(PayoutAccount, int(account_id)) if str(account_id or "").isdigit() else None
        if acct is None or int(acct.user_id) != int(user.id):
            raise Forbidden("Invalid payout account")

        wallet = get_or_create_wallet(user.id)
        req = PayoutRequest(
            user_id=user.id,
            wallet_id=wallet.id,
            account_id=acct.id,
            amount=amount,
            status=PayoutStatus.PENDING,
        )
        db.session.add(req)
        db.session.flush()
        apply_ledger_entry(
            wallet.id,
            WalletTxnType.PAYOUT_REQUEST,
            -amount,
            f"Payout to {acct.bank_name} {acct.account_number}",
            payout_request_id=req.id,
        )

    current_app.logger.info("Payout request %s for user %s amount %s", req.id, user.id, amount)
    return req


def list_payout_requests(user: User) -> list[PayoutRequest]:
    return (
        PayoutRequest.query.filter_by(user_id=user.id)
        .order_by(PayoutRequest.requested_at.desc(), PayoutRequest.id.desc())
        .all()
    )


def list_pending_payouts() -> list[PayoutRequest]:
    return (
        PayoutRequest.query.filter_by(status=PayoutStatus.PENDING)
        .order_by(PayoutRequest.requested_at.asc(), PayoutRequest.id.asc())
        .all()
    )


def _load_locked(payout_id: int) -> PayoutRequest:
    req = lock(PayoutRequest.query.filter_by(id=int(payout_id))).first()
    if req is None:
        raise NotFound("Payout request not found")
    return req


def approve_payout(admin: User, payout_id: int, admin_notes: str | None = None) -> PayoutRequest:
    """Mark a payout as paid out. The wallet was already debited at request time."""
    with atomic():
        req = _load_locked(payout_id)
        if req.status not in (PayoutStatus.PENDING, PayoutStatus.APPROVED):
            raise InvalidStateTransition(f"Payout is already {req.status}")
        req.status = PayoutStatus.COMPLETED
        req.processed_at = datetime.utcnow()
        if admin_notes:
            req.admin_notes = admin_notes.strip()[:1000]
        AuditLog.record("payout_approved", actor_user_id=admin.id, target_type="payout_request", target_id=req.id, amount=str(req.amount))
        notify(req.user_id, f"Your payout of {_idr(req.amount)} has been approved.", "/wallet", "WALLET")

    current_app.logger.info("Payout %s approved by admin %s", req.id, admin.id)
    return req


def reject_payout(admin: User, payout_id: int, reason) -> PayoutRequest:
    reason = (reason or "").strip() if isinstance(reason, str) else ""
    if not reason:
        raise ValidationError("A rejection reason is required")

    with atomic():
        req = _load_locked(payout_id)
        if req.status != PayoutStatus.PENDING:
            raise InvalidStateTransition(f"Only pending payouts can be rejected (status {req.status})")
        req.status = PayoutStatus.REJECTED
        req.processed_at = datetime.utcnow()
        req.admin_notes = reason[:1000]
        credit_user(
            req.user_id,
            WalletTxnType.PAYOUT_REJECTED,
            Decimal(req.amount),
            f"Payout #{req.id} rejected: {reason}",
            payout_request_id=req.id,
        )
        AuditLog.record("payout_rejected", actor_user_id=admin.id, target_type="payout_request", target_id=req.id, reason=reason[:240])
        notify(req.user_id, f"Your payout was rejected. Reason: {reason}", "/wallet", "WALLET")

    current_app.logger.info("Payout %s rejected by admin %s", req.id, admin.id)
    return req
