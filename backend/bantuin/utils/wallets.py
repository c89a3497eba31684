from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from bantuin.errors import InsufficientFunds, NotFound, ValidationError
from bantuin.extensions import db
from bantuin.models import Wallet, WalletTxn, WalletTxnType
from bantuin.utils.atomic import atomic, lock
from bantuin.utils.commission import as_money

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_wallet_if_missing(user_id: int) -> None:
    insert = _UPSERT_DIALECTS.get(db.engine.dialect.name)
    if insert is not None:
        now = datetime.utcnow()
        stmt = insert(Wallet.__table__).values(
            user_id=int(user_id),
            balance=Decimal("0.00"),
            currency="IDR",
            created_at=now,
            updated_at=now,
        ).on_conflict_do_nothing(index_elements=["user_id"])
        db.session.execute(stmt)
        return
    try:
        with db.session.begin_nested():
            db.session.add(Wallet(user_id=int(user_id), balance=Decimal("0.00"), currency="IDR"))
    except IntegrityError:
        # Another request created it first; the locked read below picks it up.
        pass


def get_or_create_wallet(user_id: int, *, for_update: bool = True) -> Wallet:
    """Return the user's wallet, creating an empty one on first use.

    Concurrent first calls for the same user converge on a single row; the
    unique user_id constraint decides the winner.
    """
    q = Wallet.query.filter_by(user_id=int(user_id))
    w = (lock(q) if for_update else q).first()
    if w is not None:
        return w
    _insert_wallet_if_missing(int(user_id))
    return lock(Wallet.query.filter_by(user_id=int(user_id))).one()


def apply_ledger_entry(
    wallet_id: int,
    txn_type: str,
    amount,
    description: str,
    *,
    order_id: int | None = None,
    payment_id: int | None = None,
    payout_request_id: int | None = None,
    dispute_id: int | None = None,
) -> WalletTxn:
    """Move money in or out of a wallet and record it.

    ``amount`` is signed: positive credits, negative debits. This is the only
    code path that writes Wallet.balance.
    """
    if txn_type not in WalletTxnType.ALL:
        raise ValidationError(f"Unknown ledger entry type: {txn_type}")
    try:
        delta = as_money(amount)
    except ValueError as e:
        raise ValidationError(str(e))
    if delta == 0:
        raise ValidationError("Ledger entry amount must be non-zero")

    with atomic():
        w = lock(Wallet.query.filter_by(id=int(wallet_id))).first()
        if w is None:
            raise NotFound("Wallet not found")

        before = Decimal(w.balance or 0)
        after = before + delta
        if after < 0:
            raise InsufficientFunds()

        w.balance = after
        w.updated_at = datetime.utcnow()

        txn = WalletTxn(
            wallet_id=w.id,
            type=txn_type,
            amount=delta,
            balance_before=before,
            balance_after=after,
            description=(description or "")[:240],
            order_id=order_id,
            payment_id=payment_id,
            payout_request_id=payout_request_id,
            dispute_id=dispute_id,
        )
        db.session.add(txn)
        db.session.flush()

    current_app.logger.info(
        "Ledger %s wallet=%s amount=%s balance %s -> %s", txn_type, w.id, delta, before, after
    )
    return txn


def credit_user(user_id: int, txn_type: str, amount, description: str, **refs) -> WalletTxn:
    with atomic():
        w = get_or_create_wallet(int(user_id))
        return apply_ledger_entry(w.id, txn_type, abs(as_money(amount)), description, **refs)


def debit_user(user_id: int, txn_type: str, amount, description: str, **refs) -> WalletTxn:
    with atomic():
        w = get_or_create_wallet(int(user_id))
        return apply_ledger_entry(w.id, txn_type, -abs(as_money(amount)), description, **refs)


def wallet_history(user_id: int, limit: int = 50) -> list[WalletTxn]:
    w = Wallet.query.filter_by(user_id=int(user_id)).first()
    if w is None:
        return []
    limit = max(1, min(int(limit or 50), 200))
    return (
        WalletTxn.query.filter_by(wallet_id=w.id)
        .order_by(WalletTxn.created_at.desc(), WalletTxn.id.desc())
        .limit(limit)
        .all()
    )
