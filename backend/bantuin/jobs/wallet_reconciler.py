from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from bantuin.extensions import db
from bantuin.models import AuditLog, Wallet, WalletTxn


def _ledger_sum(wallet_id: int) -> Decimal:
    total = db.session.query(func.coalesce(func.sum(WalletTxn.amount), 0)).filter(
        WalletTxn.wallet_id == int(wallet_id)
    ).scalar()
    return Decimal(str(total or 0))


def _chain_breaks(wallet_id: int) -> list[int]:
    """Ids of ledger rows whose balance_before does not continue the previous row."""
    breaks = []
    prev_after = Decimal("0")
    rows = WalletTxn.query.filter_by(wallet_id=int(wallet_id)).order_by(WalletTxn.id.asc()).all()
    for t in rows:
        before = Decimal(t.balance_before or 0)
        after = Decimal(t.balance_after or 0)
        if before != prev_after or after != before + Decimal(t.amount or 0):
            breaks.append(int(t.id))
        prev_after = after
    return breaks


def reconcile_wallets(*, limit: int = 500) -> dict:
    """Detect wallets whose stored balance disagrees with their ledger.

    Balances are never corrected here. Every anomaly becomes a
    ``wallet_anomaly`` AuditLog row for an operator to look at.
    """
    checked = 0
    anomalies = []

    for w in Wallet.query.order_by(Wallet.id.asc()).limit(int(limit)).all():
        checked += 1
        computed = _ledger_sum(int(w.id))
        stored = Decimal(w.balance or 0)

        issues = []
        if computed != stored:
            issues.append("ledger_mismatch")
        breaks = _chain_breaks(int(w.id))
        if breaks:
            issues.append("chain_break")
        if stored < 0:
            issues.append("negative_balance")
        if not issues:
            continue

        anomalies.append(int(w.id))
        AuditLog.record(
            "wallet_anomaly",
            target_type="wallet",
            target_id=int(w.id),
            issues=issues,
            user_id=int(w.user_id),
            stored_balance=str(stored),
            computed_balance=str(computed),
            broken_txn_ids=breaks[:20],
        )
        current_app.logger.warning("Wallet %s anomaly: %s", w.id, ",".join(issues))

    db.session.commit()
    return {"checked": checked, "anomalies": len(anomalies), "wallet_ids": anomalies}
