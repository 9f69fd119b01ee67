"""Human-friendly time references for the CLI.

Supports:
- ISO format: "2025-01-15", "2025-01-15T14:30:00"
- Relative: "3 days ago", "2 weeks ago", "1 month ago"
- Named: "today", "yesterday", "last week", "last month"
"""

import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as dateparser
from dateutil.relativedelta import relativedelta

_UNIT_DELTAS = {
    "minute": lambda n: timedelta(minutes=n),
    "hour": lambda n: timedelta(hours=n),
    "day": lambda n: timedelta(days=n),
    "week": lambda n: timedelta(weeks=n),
    "month": lambda n: relativedelta(months=n),
    "year": lambda n: relativedelta(years=n),
}

_AGO_PATTERN = re.compile(r"(\d+)\s*(minute|hour|day|week|month|year)s?\s*ago")

# Largest unit first; months and years are approximate
_RELATIVE_STEPS = [
    ("year", 365 * 86400),
    ("month", 30 * 86400),
    ("week", 7 * 86400),
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
]


def parse_time_reference(ref: str, now: datetime | None = None) -> datetime:
    """Parse a time reference into a timezone-aware UTC datetime.

    Raises:
        ValueError: If the reference cannot be parsed
    """
    if now is None:
        now = datetime.now(timezone.utc)

    ref = ref.strip()
    key = ref.lower()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if key == "today":
        return midnight
    if key == "yesterday":
        return midnight - timedelta(days=1)
    if key == "last week":
        return now - timedelta(weeks=1)
    if key == "last month":
        return now - relativedelta(months=1)

    ago_match = _AGO_PATTERN.fullmatch(key)
    if ago_match:
        amount = int(ago_match.group(1))
        return now - _UNIT_DELTAS[ago_match.group(2)](amount)

    try:
        parsed = dateparser.parse(ref)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Cannot parse time reference: {ref}") from e
    if parsed is None:
        raise ValueError(f"Cannot parse time reference: {ref}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Format a datetime as "3 days ago", "just now", etc."""
    if now is None:
        now = datetime.now(timezone.utc)

    seconds = int((now - dt).total_seconds())
    if seconds < 0:
        return "in the future"

    for unit, size in _RELATIVE_STEPS:
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"
