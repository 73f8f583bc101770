"""
Formatting helpers for CLI output and tabular exports.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Any, Union


def money(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount with exactly 2 decimals and thousands separators.

    Examples:
        money(1500) -> "1,500.00"
        money(Decimal('200')) -> "200.00"
        money(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    return f"{num:,.2f}"


def datetime_fmt(value: Union[datetime, date, None], with_time: bool = True) -> str:
    """
    Format a datetime as YYYY-MM-DD HH:MM.

    Examples:
        datetime_fmt(datetime(2026, 1, 12, 15, 30)) -> "2026-01-12 15:30"
        datetime_fmt(datetime(2026, 1, 12, 15, 30), with_time=False) -> "2026-01-12"
    """
    if value is None:
        return "-"

    if not isinstance(value, datetime):
        if isinstance(value, date):
            return value.strftime("%Y-%m-%d")
        return "-"

    if with_time:
        return value.strftime("%Y-%m-%d %H:%M")
    return value.strftime("%Y-%m-%d")


def cell_text(value: Any) -> str:
    """Plain-text rendering of an export cell."""
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return f"{value.quantize(Decimal('0.01'))}"
    if isinstance(value, (datetime, date)):
        return datetime_fmt(value)
    return str(value)
