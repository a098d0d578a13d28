"""
Helper per la formattazione centralizzata di numeri e date.

Funzioni pure (nessun accesso a current_app): le usa anche il renderer PDF,
che deve restare deterministico.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

DATE_FORMAT = "%d/%m/%Y"


def format_number(value: Any, decimals: int = 2, use_grouping: bool = False) -> str:
    if value in (None, ""):
        return ""
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return str(value)

    if decimals < 0:
        decimals = 0

    quant = Decimal("1") if decimals == 0 else Decimal("1").scaleb(-decimals)
    try:
        number = number.quantize(quant)
    except InvalidOperation:
        pass

    format_spec = f",.{decimals}f" if use_grouping else f".{decimals}f"
    return format(number, format_spec)


def format_hours(value: Any) -> str:
    """Ore senza decimali superflui: 8 -> '8', 7.50 -> '7.5'."""
    text = format_number(value, decimals=2)
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_date(value: Optional[date]) -> str:
    """Solo la data di calendario, mai l'ora."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(DATE_FORMAT)
