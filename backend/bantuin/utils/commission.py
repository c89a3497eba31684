from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from flask import current_app

CENT = Decimal("0.01")

# Default platform fee taken from every completed order (overridable via PLATFORM_FEE_RATE)
DEFAULT_PLATFORM_FEE_RATE = Decimal("0.10")


def as_money(value) -> Decimal:
    """Coerce a JSON number/string to a 2-place Decimal. Raises ValueError on junk."""
    if isinstance(value, bool) or value is None:
        raise ValueError("amount required")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def platform_fee_rate() -> Decimal:
    raw = current_app.config.get("PLATFORM_FEE_RATE", DEFAULT_PLATFORM_FEE_RATE)
    rate = Decimal(str(raw))
    if rate < 0 or rate >= 1:
        raise RuntimeError(f"PLATFORM_FEE_RATE out of range: {rate}")
    return rate


def compute_commission(amount, rate) -> Decimal:
    a = max(Decimal(str(amount or 0)), Decimal("0"))
    r = max(Decimal(str(rate or 0)), Decimal("0"))
    return (a * r).quantize(CENT, rounding=ROUND_HALF_UP)


def seller_share(price) -> Decimal:
    """What the seller receives for an order: price minus the platform fee."""
    price = Decimal(str(price or 0)).quantize(CENT, rounding=ROUND_HALF_UP)
    return price - compute_commission(price, platform_fee_rate())
