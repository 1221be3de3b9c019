"""Date parsing utilities."""

from datetime import date, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


def parse_date(date_str: str) -> date:
    """Parse a date string into a date object.

    Supports absolute dates ("2024-01-15", "January 15, 2024") and a few
    relative forms used when entering vouchers and periods:
    - "today", "yesterday", "tomorrow"
    - "start of month", "end of month", "start of last month", "end of last month"

    Args:
        date_str: Date string

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    date_str = date_str.strip().lower()
    today = date.today()

    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "tomorrow": today + timedelta(days=1),
        "start of month": today.replace(day=1),
        "end of month": today.replace(day=1) + relativedelta(months=1) - timedelta(days=1),
        "start of last month": (today - relativedelta(months=1)).replace(day=1),
        "end of last month": today.replace(day=1) - timedelta(days=1),
    }
    if date_str in relative_dates:
        return relative_dates[date_str]

    try:
        return date_parser.parse(date_str).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def parse_optional_date(date_str: Optional[str]) -> Optional[date]:
    """Parse a date string, passing None and empty strings through as None."""
    if date_str is None or not str(date_str).strip():
        return None
    return parse_date(str(date_str))
