"""ORM-level guards for money and counts.

Attached with ``@validates`` so a negative price or an empty party never
reaches the database, whichever service writes the row. Money is always
stored quantized to cents.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize any numeric to cents, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money(key: str, value):
    """Amount that may be zero (prices, order totals)."""
    if value is None:
        return value
    amount = to_money(value)
    if amount < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return amount


def payable(key: str, value):
    """Amount somebody actually has to hand over."""
    amount = money(key, value)
    if amount is not None and amount < CENT:
        raise ValueError(f"{key} must be at least {CENT}, got {value}")
    return amount


def count(key: str, value, minimum: int = 0):
    if value is not None and value < minimum:
        raise ValueError(f"{key} must be at least {minimum}, got {value}")
    return value
