"""
Date parsing and formatting utilities.
"""

import re
from datetime import date, datetime, timezone
from typing import Optional, Union


# Graph-style timestamps carry up to seven fractional digits.
_FRACTION_RE = re.compile(r'(\.\d{6})\d+')


def parse_date(date_str: Optional[str]) -> Optional[date]:
    """
    Parse a date string into a date object.

    Handles various formats:
    - ISO format (YYYY-MM-DD)
    - ISO datetime (YYYY-MM-DDTHH:MM:SS), keeping only the calendar date

    Args:
        date_str: Date string to parse

    Returns:
        Parsed date object or None if invalid
    """
    if not date_str:
        return None

    if 'T' in date_str:
        date_str = date_str.split('T')[0]

    try:
        return datetime.strptime(date_str.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def format_date(d: Optional[date]) -> Optional[str]:
    """
    Format a date object as ISO string (YYYY-MM-DD).

    Args:
        d: Date object to format

    Returns:
        ISO formatted date string or None
    """
    if not d:
        return None

    return d.strftime('%Y-%m-%d')


def parse_timestamp(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. Returns None for anything that
    does not parse.
    """
    if not value:
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = _FRACTION_RE.sub(r'\1', value.strip())
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_from_epoch(seconds: float) -> datetime:
    """Convert a file mtime into an aware UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def dates_equal(date1: Optional[date], date2: Optional[date], tolerance_days: int = 0) -> bool:
    """
    Check if two dates are equal within a tolerance.

    Args:
        date1: First date
        date2: Second date
        tolerance_days: Number of days tolerance (0 for exact match)

    Returns:
        True if dates are equal within tolerance
    """
    if date1 is None and date2 is None:
        return True

    if date1 is None or date2 is None:
        return False

    diff = abs((date1 - date2).days)
    return diff <= tolerance_days
