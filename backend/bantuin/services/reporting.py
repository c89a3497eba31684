from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from bantuin.extensions import db
from bantuin.models import Order, OrderStatus, User, Wallet, WalletTxn, WalletTxnType
from bantuin.utils.commission import CENT, platform_fee_rate


def dashboard_stats() -> dict:
    total_balance = db.session.query(func.coalesce(func.sum(Wallet.balance), 0)).scalar()
    completed_volume = db.session.query(func.coalesce(func.sum(Order.price), 0)).filter(
        Order.status == OrderStatus.COMPLETED
    ).scalar()
    active_users = User.query.filter(User.role != "ADMIN", User.status == "active").count()

    revenue = (Decimal(str(completed_volume or 0)) * platform_fee_rate()).quantize(CENT)
    return {
        "total_user_balance": float(Decimal(str(total_balance or 0))),
        "total_platform_revenue": float(revenue),
        "total_active_users": int(active_users),
    }


def income_history(limit: int = 50) -> list[dict]:
    rows = (
        db.session.query(WalletTxn, User.full_name, Order.title)
        .join(Wallet, Wallet.id == WalletTxn.wallet_id)
        .join(User, User.id == Wallet.user_id)
        .outerjoin(Order, Order.id == WalletTxn.order_id)
        .filter(WalletTxn.type.in_(WalletTxnType.INCOME))
        .order_by(WalletTxn.created_at.desc(), WalletTxn.id.desc())
        .limit(int(limit))
        .all()
    )
    out = []
    for txn, full_name, title in rows:
        d = txn.to_dict()
        d["user_full_name"] = full_name or ""
        d["order_title"] = title or ""
        out.append(d)
    return out
