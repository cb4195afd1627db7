# rehabtrack/timeutil.py
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from .errors import InvalidInput


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def calendar_day(value: datetime) -> date:
    return to_utc_naive(value).date()


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def parse_datetime(value: Any, field: str = "date") -> Optional[datetime]:
    """
    Accepts datetimes or ISO-8601 strings ("2025-01-31", "2025-01-31T08:00:00Z").
    Returns None for None/empty, raises InvalidInput for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, date):
        return start_of_day(value)
    if not isinstance(value, str):
        raise InvalidInput(f"invalid {field}")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise InvalidInput(f"invalid {field}")
    return to_utc_naive(parsed)
