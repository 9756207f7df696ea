"""
Timestamp parsing helpers.

Order data arrives from legacy file exports and from DuckDB, so timestamps may
be datetimes, dates, or ISO-8601 strings with or without a zone designator.
Everything is normalised to naive UTC datetimes.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Optional


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def is_date_only(value: Any) -> bool:
    """True for a ``YYYY-MM-DD`` string or a plain ``date``."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    if isinstance(value, str):
        text = value.strip()
        return len(text) == 10 and "T" not in text and " " not in text
    return False


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp leniently.

    Args:
        value: datetime, date, or ISO-8601 string (``Z`` suffix accepted)

    Returns:
        Naive UTC datetime, or None when the value is missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError):
        return None
