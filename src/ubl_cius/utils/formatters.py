from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

from ubl_cius.config import ISSUE_TIME_NOTE_FORMAT


def format_amount(value: Decimal) -> str:
    """Format a monetary amount with exactly 2 decimal places, e.g. 1000 -> 1000.00."""
    return f"{value:.2f}"


def format_percent(value: Decimal) -> str:
    """Format a tax rate with 2 decimal places, e.g. 25 -> 25.00."""
    return f"{value:.2f}"


def format_quantity(value: Decimal) -> str:
    """Format a quantity in plain notation without trailing zeros (1.500 -> 1.5, 1E+1 -> 10)."""
    return f"{value.normalize():f}"


def format_date(value: date) -> str:
    return value.isoformat()


def format_time(value: time) -> str:
    return value.strftime("%H:%M:%S")


def format_issue_timestamp(value: datetime) -> str:
    """Format an issue timestamp the Croatian way: 01. 05. 2025. u 14:30."""
    return value.strftime(ISSUE_TIME_NOTE_FORMAT)
