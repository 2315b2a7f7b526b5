"""Date helpers for billing cycles."""
from datetime import date, datetime
from typing import Optional, Union


def as_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """
    Normalize a date argument.

    Accepts ``date``, ``datetime`` (its date part) and ISO strings
    (``2024-01-16`` or a full ISO timestamp).

    Raises:
        ValueError: if a string is not an ISO date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) > 10:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    return date.fromisoformat(text)


def iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None
