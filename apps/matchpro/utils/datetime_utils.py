"""
Datetime utility functions.
Provides timezone-aware helpers shared by the services.
"""

import re
from datetime import datetime
from typing import Optional, Tuple
import pytz


MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to a naive datetime (some drivers drop tzinfo on read).

    Aware datetimes are converted to UTC; None passes through.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def month_key(moment: Optional[datetime] = None) -> str:
    """
    Format a datetime as a billing month key.

    Examples:
        >>> month_key(datetime(2026, 3, 9))
        "2026-03"
    """
    moment = moment or utcnow()
    return f"{moment.year}-{moment.month:02d}"


def parse_month_key(month: str) -> Tuple[int, int]:
    """
    Validate a "YYYY-MM" month key and return (year, month).

    Raises:
        ValueError: If the key is not a valid month
    """
    match = MONTH_KEY_PATTERN.match(month or "")
    if not match:
        raise ValueError(f"Invalid month '{month}', expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


def format_match_date(value: Optional[datetime]) -> str:
    """Format a match date as DD/MM/YYYY, or an empty string when unknown."""
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")
