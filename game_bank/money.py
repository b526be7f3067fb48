"""
Money Helpers

Single-currency Decimal arithmetic for balances, prices and quantities.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR, getcontext, InvalidOperation
from typing import Any, Optional

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value: Any) -> Decimal:
    """
    Convert a value to Decimal without going through binary floats

    Raises:
        ValueError: If the value cannot be represented as a finite Decimal
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    if not result.is_finite():
        raise ValueError(f"Cannot use non-finite value '{value}'")
    return result


def quantize_money(value: Any, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round to cents, half up unless another rounding mode is given"""
    return to_decimal(value).quantize(CENT, rounding=rounding)


def optional_money(value: Any) -> Optional[Decimal]:
    """quantize_money that passes None through"""
    if value is None:
        return None
    return quantize_money(value)


def loyalty_points_for(amount: Decimal, divisor: int = 100) -> int:
    """Loyalty points earned for an amount: floor(amount / divisor)"""
    if amount <= ZERO:
        return 0
    return int((amount / Decimal(divisor)).to_integral_value(rounding=ROUND_FLOOR))


def format_money(amount: Decimal) -> str:
    """Format for notification texts"""
    return f"{quantize_money(amount):,.2f}"


PRICE_QUANTUM = Decimal('0.0001')


def quantize_price(value: Any) -> Decimal:
    """Asset prices keep four decimal places so small drifts are not lost"""
    return to_decimal(value).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
