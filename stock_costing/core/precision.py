"""
Decimal rounding helpers
All money, quantity and rate values are rounded half-up to the configured places
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from .config import settings

CURRENCY_PRECISION = settings.CURRENCY_DECIMAL_PLACES
QUANTITY_PRECISION = settings.QUANTITY_DECIMAL_PLACES
RATE_PRECISION = settings.RATE_DECIMAL_PLACES

ZERO = Decimal('0')


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats, strings and None to Decimal (floats via str)"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _quantize(value: Any, places: int) -> Decimal:
    return to_decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_qty(value: Any) -> Decimal:
    return _quantize(value, QUANTITY_PRECISION)


def round_rate(value: Any) -> Decimal:
    return _quantize(value, RATE_PRECISION)


def round_currency(value: Any) -> Decimal:
    return _quantize(value, CURRENCY_PRECISION)


def value_matches(qty: Any, rate: Any, value: Any) -> bool:
    """True when a stored value agrees with qty x rate, allowing one cent
    plus the drift of a rate rounded to RATE_PRECISION places"""
    qty = to_decimal(qty)
    slack = Decimal(1).scaleb(-CURRENCY_PRECISION) + abs(qty) * Decimal(5).scaleb(-(RATE_PRECISION + 1))
    return abs(qty * to_decimal(rate) - to_decimal(value)) <= slack
