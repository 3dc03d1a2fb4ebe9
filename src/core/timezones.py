"""
HomeBase Assistant — Timezone & date helpers.

Records are stored in UTC as "YYYY-MM-DD HH:MM:SS". Everything the user
types or reads is in their own timezone; conversion happens only here.
Weeks start on Sunday.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.core.errors import ValidationError

logger = logging.getLogger(__name__)

STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S"
DISPLAY_FORMAT = "%Y-%m-%d %H:%M"

# Keyword -> canonical English keyword
_DATE_KEYWORDS = {
    "today": "today",
    "היום": "today",
    "tomorrow": "tomorrow",
    "מחר": "tomorrow",
    "this week": "this week",
    "השבוע": "this week",
    "השבוע הזה": "this week",
    "next week": "next week",
    "השבוע הבא": "next week",
    "this month": "this month",
    "החודש": "this month",
    "החודש הזה": "this month",
    "next month": "next month",
    "החודש הבא": "next month",
}


def get_zone(tz_name: str | None) -> ZoneInfo:
    """Return the zone for ``tz_name``, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", tz_name)
        return ZoneInfo("UTC")


def is_valid_timezone(tz_name: str) -> bool:
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_local(value: str) -> datetime:
    """Parse "YYYY-MM-DD", "YYYY-MM-DD HH:MM[:SS]" or ISO-8601 into a datetime."""
    text = value.strip().replace("T", " ")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid date/time: {value!r}") from None


def to_utc(value: str | None, tz_name: str) -> str | None:
    """Convert a user-local date/time string to a UTC storage string.

    Values carrying their own offset are converted from that offset instead.
    A bare date means midnight local time.
    """
    if value is None or not str(value).strip():
        return None
    parsed = _parse_local(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=get_zone(tz_name))
    return parsed.astimezone(timezone.utc).strftime(STORAGE_FORMAT)


def parse_utc(value: str) -> datetime:
    """Parse a stored UTC string into an aware datetime."""
    parsed = datetime.fromisoformat(value.strip().replace("T", " "))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_user_tz(value: str | None, tz_name: str, fmt: str = DISPLAY_FORMAT) -> str | None:
    """Render a stored UTC string in the user's timezone."""
    if not value:
        return None
    return parse_utc(value).astimezone(get_zone(tz_name)).strftime(fmt)


def today(tz_name: str, now: datetime | None = None) -> date:
    """The current calendar date in ``tz_name``."""
    now = now or utc_now()
    return now.astimezone(get_zone(tz_name)).date()


def normalize_keyword(value: str | None) -> str | None:
    """Map an English or Hebrew date keyword to its English form, else None."""
    if not value:
        return None
    return _DATE_KEYWORDS.get(value.strip().lower())


def parse_date(value: str | None, tz_name: str, now: datetime | None = None) -> str | None:
    """Resolve "today"/"tomorrow" (either language) or an explicit date to "YYYY-MM-DD".

    Returns None for an empty value. Raises ValidationError for text that is
    neither a single-day keyword nor a date.
    """
    if not value or not value.strip():
        return None
    keyword = normalize_keyword(value)
    if keyword == "today":
        return today(tz_name, now).isoformat()
    if keyword == "tomorrow":
        return (today(tz_name, now) + timedelta(days=1)).isoformat()
    return _parse_local(value).date().isoformat()


def parse_date_range(
    value: str | None, tz_name: str, now: datetime | None = None,
) -> tuple[str, str] | None:
    """Resolve a day/week/month keyword or a single date to an inclusive local range.

    Returns (start_date, end_date) as "YYYY-MM-DD", or None for an empty value.
    """
    if not value or not value.strip():
        return None
    keyword = normalize_keyword(value)
    current = today(tz_name, now)

    if keyword in ("this week", "next week"):
        # date.weekday(): Monday=0 ... Sunday=6
        start = current - timedelta(days=(current.weekday() + 1) % 7)
        if keyword == "next week":
            start += timedelta(days=7)
        return start.isoformat(), (start + timedelta(days=6)).isoformat()

    if keyword in ("this month", "next month"):
        start = current.replace(day=1)
        if keyword == "next month":
            start = (start + timedelta(days=32)).replace(day=1)
        end = (start + timedelta(days=32)).replace(day=1) - timedelta(days=1)
        return start.isoformat(), end.isoformat()

    single = parse_date(value, tz_name, now)
    return single, single


def local_range_to_utc(start_date: str, end_date: str, tz_name: str) -> tuple[str, str]:
    """Inclusive local date range -> UTC (start, end) storage strings."""
    zone = get_zone(tz_name)
    start = datetime.combine(date.fromisoformat(start_date), time.min, tzinfo=zone)
    end = datetime.combine(date.fromisoformat(end_date), time(23, 59, 59), tzinfo=zone)
    return (
        start.astimezone(timezone.utc).strftime(STORAGE_FORMAT),
        end.astimezone(timezone.utc).strftime(STORAGE_FORMAT),
    )
