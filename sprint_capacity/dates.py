"""
Input coercion for the planning engine.

Every date and number that reaches the engine passes through one of these
helpers, so a malformed value fails fast with a ValidationError instead of
turning into NaN or a silent zero further down.
"""

import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Union

from .errors import ValidationError

DateLike = Union[date, datetime, str]

SECONDS_PER_HOUR = 3600

# Jira sends offsets as +0000, fromisoformat wants +00:00
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_datetime(value: DateLike, field: str) -> datetime:
    """
    Parse a timestamp into a timezone-aware datetime.

    Naive values are taken as UTC. Date-only values become midnight.

    Raises:
        ValidationError: if the value is missing or not a date
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        text = value.strip().replace("Z", "+00:00")
        text = _COMPACT_OFFSET.sub(r"\1:\2", text) if "T" in text else text
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"{field} is not a valid date: {value!r}", field) from None
    else:
        raise ValidationError(f"{field} is missing or not a date: {value!r}", field)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_datetime(value: Optional[DateLike], field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_datetime(value, field)


def parse_date(value: DateLike, field: str) -> date:
    """
    Parse a calendar date.

    Timestamps keep the calendar date of their own offset, so a worklog
    started at 23:30+05:30 counts on the day it was written down.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"{field} is not a valid date: {value!r}", field) from None
    return parse_datetime(value, field).date()


def parse_optional_date(value: Optional[DateLike], field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    return parse_date(value, field)


def parse_number(value, field: str, default: float = 0.0) -> float:
    """
    Coerce an optional numeric field.

    None means "not set" and yields the default. Anything else must be a
    finite number or a numeric string.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number, got {value!r}", field)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number, got {value!r}", field) from None
    else:
        raise ValidationError(f"{field} must be a number, got {value!r}", field)

    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number, got {value!r}", field)
    return number


def seconds_to_hours(value, field: str) -> float:
    """Convert an optional seconds field (Jira time tracking) to hours."""
    return parse_number(value, field) / SECONDS_PER_HOUR


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day in [start, end]."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def is_weekday(day: date) -> bool:
    return day.weekday() < 5  # Monday = 0, Friday = 4


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like a spreadsheet would."""
    return int(math.floor(value + 0.5))


def last_working_day(today: date) -> date:
    """The weekday before today; on a Monday that is the previous Friday."""
    day = today - timedelta(days=1)
    while not is_weekday(day):
        day -= timedelta(days=1)
    return day
