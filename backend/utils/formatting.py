"""
Text formatting helpers for tool results.

Tool output is read by the model, not rendered as UI, so formats stay plain.
"""

from datetime import date, datetime
from typing import Any, Optional

from backend.config import settings


def format_amount(amount: Any, currency: Optional[str] = None) -> str:
    """'INR 1,250.00' style amount; missing amounts render as 0."""
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0.0
    return f"{currency or settings.DEFAULT_CURRENCY} {value:,.2f}"


def format_number(value: Any) -> str:
    """Thousands-separated number without a currency code."""
    try:
        return f"{float(value or 0):,.2f}"
    except (TypeError, ValueError):
        return "0.00"


def format_date(value: Any) -> str:
    """YYYY-MM-DD for dates and ISO strings, 'N/A' when missing."""
    if not value:
        return "N/A"
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value).split("T", 1)[0]


def parse_date(value: Any) -> Optional[date]:
    """Parse a stored date/ISO string; None when missing or malformed."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).split("T", 1)[0])
    except ValueError:
        return None
