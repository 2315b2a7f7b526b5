"""Money helpers for billing amounts (Argentine formats, half-up rounding)."""
import math
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

AR_NUMBER_PATTERN = re.compile(r"^-?(?:\d{1,3}(?:\.\d{3})+|\d+)(?:,\d+)?$")

CENT = Decimal('0.01')

Number = Union[int, float, Decimal]


def round2(amount: Number) -> Number:
    """
    Round to 2 decimals, half away from zero.

    Rounding happens on the decimal representation of the value, so
    ``round2(10.005) == 10.01`` even though the binary float is slightly
    below 10.005. Floats and ints come back as float, Decimals as Decimal.
    NaN and infinities are returned unchanged.

    Examples:
        round2(258.0645) -> 258.06
        round2(-10.005) -> -10.01
    """
    if isinstance(amount, Decimal):
        if not amount.is_finite():
            return amount
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)

    if isinstance(amount, float) and (math.isnan(amount) or math.isinf(amount)):
        return amount

    return float(Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP))


def to_decimal(value) -> Optional[Decimal]:
    """Convert a numeric value to Decimal; None when it is missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return parse_amount(value)
        except ValueError:
            return None
    return None


def parse_amount(value) -> Decimal:
    """
    Parse an amount coming from a form or JSON body.

    Accepts numbers, plain strings (``"1500.50"``) and Argentine formatted
    strings (``"1.500,50"``).

    Raises:
        ValueError: if the value is empty or not a number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Monto inválido. Usá 1.234,56 o 1234.56')

    if isinstance(value, (int, float, Decimal)):
        decimal_value = to_decimal(value)
        if decimal_value is None:
            raise ValueError('Monto inválido. Usá 1.234,56 o 1234.56')
        return decimal_value

    cleaned = str(value).strip()
    if not cleaned:
        raise ValueError('Monto inválido. Usá 1.234,56 o 1234.56')

    if AR_NUMBER_PATTERN.match(cleaned) and (',' in cleaned or cleaned.count('.') > 1):
        normalized = cleaned.replace('.', '').replace(',', '.')
    else:
        normalized = cleaned

    try:
        decimal_value = Decimal(normalized)
    except (InvalidOperation, ValueError):
        raise ValueError('Monto inválido. Usá 1.234,56 o 1234.56')

    if not decimal_value.is_finite():
        raise ValueError('Monto inválido. Usá 1.234,56 o 1234.56')

    return decimal_value
