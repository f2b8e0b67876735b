"""
Utilidades de formateo para comprobantes.
Montos, fechas y horas en estilo argentino.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union

PAYMENT_METHOD_LABELS = {
    'CASH': 'Efectivo',
    'TRANSFER': 'Transferencia',
    'CARD': 'Tarjeta',
}


def money_ar(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Formatea un monto con exactamente 2 decimales, punto para miles y coma
    para decimales.

    Examples:
        money_ar(1500) -> "1.500,00"
        money_ar(Decimal('30.5')) -> "30,50"
        money_ar(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        normalized = str(value).replace(",", ".")
        num = Decimal(normalized).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    num = abs(num)

    integer_part, decimal_part = f"{num:.2f}".split(".")
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = '.'.join(groups)[::-1]

    return f"{sign}{integer_formatted},{decimal_part}"


def date_ar(value: Union[date, datetime, None]) -> str:
    """DD/MM/YYYY, or "-" if missing."""
    if value is None:
        return "-"
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        return "-"
    return value.strftime("%d/%m/%Y")


def time_ar(value: Union[datetime, None]) -> str:
    """HH:MM (24h), or "-" if missing."""
    if not isinstance(value, datetime):
        return "-"
    return value.strftime("%H:%M")


def payment_method_label(value) -> str:
    """Spanish label for a PaymentMethod (enum or string)."""
    key = getattr(value, 'value', value)
    return PAYMENT_METHOD_LABELS.get(str(key).upper(), str(key))
