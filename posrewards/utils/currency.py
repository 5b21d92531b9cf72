"""
Money helpers.

All amounts are Decimal. Rounding is half-up to the currency's minor unit:
two places for most currencies, none for zero-decimal currencies (JPY, KRW...).
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

from flask import current_app, has_app_context

ZERO = Decimal('0')

_FALLBACK_ZERO_DECIMAL = {'JPY', 'KRW', 'VND', 'CLP', 'ISK'}


def zero_decimal_currencies() -> set:
    if has_app_context():
        return current_app.config.get('ZERO_DECIMAL_CURRENCIES', _FALLBACK_ZERO_DECIMAL)
    return _FALLBACK_ZERO_DECIMAL


def minor_unit_exponent(currency_code: Optional[str]) -> int:
    """Number of decimal places used by a currency."""
    if currency_code and currency_code.upper() in zero_decimal_currencies():
        return 0
    return 2


def round_money(amount: Decimal, currency_code: Optional[str] = 'USD') -> Decimal:
    """Round half-up to the currency's minor unit."""
    places = minor_unit_exponent(currency_code)
    quantum = Decimal(1).scaleb(-places)
    return Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str = 'amount') -> Decimal:
    """
    Parse a JSON number or numeric string into a Decimal.

    Floats go through str() so 0.1 stays 0.1.

    Raises:
        ValueError: if the value is missing or not numeric
    """
    if value is None or value == '' or isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValueError(f"{field} must be a number")
    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return result


def format_money(amount: Any, currency_code: Optional[str] = 'USD') -> str:
    """'12.50 USD', or '1250 JPY' for zero-decimal currencies."""
    code = (currency_code or 'USD').upper()
    return f'{round_money(Decimal(str(amount)), code):f} {code}'
