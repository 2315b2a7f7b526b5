"""
Formateo de montos y fechas para los mensajes de facturación.

Estilo argentino: punto de miles, coma decimal, fechas DD/MM/AAAA.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union

Amount = Union[int, float, Decimal, str, None]


def money_ar_2(value: Amount) -> str:
    """
    Monto con dos decimales: 1234.5 -> "1.234,50". "-" si no es un número.
    """
    if value is None or value == "" or isinstance(value, bool):
        return "-"
    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return "-"

    # "{:,.2f}" gives 1,234.50; swap the separators
    text = f"{abs(num):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-{text}" if num < 0 else text


def money_ar(value: Amount, currency: str = 'ARS') -> str:
    """Monto con símbolo: "$ 1.234,50" para ARS, "USD 1.234,50" para otras monedas."""
    formatted = money_ar_2(value)
    if formatted == "-":
        return formatted
    symbol = "$" if currency == 'ARS' else currency
    return f"{symbol} {formatted}"


def date_ar(value: Union[date, datetime, None]) -> str:
    """31/01/2024. "-" si no es una fecha."""
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        return "-"
    return value.strftime("%d/%m/%Y")
