"""
Standardized Date/Time Handling Utilities

This module provides centralized functions for date/time operations to ensure:
1. All record timestamps are timezone-aware, in the configured TIMEZONE
2. Every record "date" is the calendar day of its timestamp in that zone
3. Period keywords resolve to inclusive YYYY-MM-DD pairs
4. Time hints in user text ("this morning", "2 hours ago") are parsed consistently

CRITICAL RULES:
- Never mix naive and aware datetimes
- Day strings are always YYYY-MM-DD, so lexicographic order is chronological
"""

import logging
import re
from datetime import datetime, date, time, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from tracker_agent.config import TIMEZONE

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
DATE_FORMAT = "%Y-%m-%d"

# Number of trailing days used when a period is not recognised
DEFAULT_PERIOD_DAYS = 30

PERIOD_ALIASES = {
    "today": "today",
    "yesterday": "yesterday",
    "week": "this-week",
    "this-week": "this-week",
    "this week": "this-week",
    "last-week": "last-week",
    "last week": "last-week",
    "month": "this-month",
    "this-month": "this-month",
    "this month": "this-month",
    "last-month": "last-month",
    "last month": "last-month",
}

_DATE_RE = r"\d{4}-\d{2}-\d{2}"
_RANGE_RE = re.compile(rf"^({_DATE_RE})\s*(?:\.\.|:|to|–|-{{2}})\s*({_DATE_RE})$")


def get_timezone(tz_name: Optional[str] = None) -> ZoneInfo:
    """
    Get the configured timezone, or the default

    Args:
        tz_name: IANA zone name; defaults to TIMEZONE from config

    Returns:
        ZoneInfo object
    """
    tz_str = tz_name or TIMEZONE or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(tz_str)
    except Exception as e:
        logger.error(f"Invalid timezone '{tz_str}': {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def now_local(tz_name: Optional[str] = None) -> datetime:
    """Current datetime in the configured timezone (timezone-aware)"""
    return datetime.now(get_timezone(tz_name))


def to_local(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Convert datetime to the configured timezone

    Naive datetimes are assumed to already be local wall-clock time.
    """
    tz = get_timezone(tz_name)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def format_day(value: date) -> str:
    """YYYY-MM-DD string for a date or datetime"""
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(DATE_FORMAT)


def parse_day(day_str: str) -> date:
    """
    Parse a YYYY-MM-DD string

    Raises:
        ValueError: If the string is not a valid calendar day
    """
    return datetime.strptime(day_str.strip(), DATE_FORMAT).date()


def week_start(day: date) -> date:
    """Sunday on or before the given day"""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def resolve_period(period: Optional[str], today: date) -> Tuple[str, str]:
    """
    Resolve a period keyword into an inclusive (start, end) pair of day strings

    Supported:
        today, yesterday
        week / this-week      Sunday of this week through today
        last-week             previous Sunday through Saturday
        month / this-month    first of this month through today
        last-month            whole previous calendar month
        YYYY-MM-DD            that single day
        YYYY-MM-DD..YYYY-MM-DD (also "to" or ":" as separator)

    Anything else resolves to the trailing DEFAULT_PERIOD_DAYS days.

    Args:
        period: Period keyword or explicit range
        today: Reference day (normally today in the configured timezone)

    Returns:
        Tuple of (start_date, end_date) as YYYY-MM-DD strings
    """
    key = PERIOD_ALIASES.get((period or "").strip().lower())

    if key == "today":
        return format_day(today), format_day(today)

    if key == "yesterday":
        yesterday = today - timedelta(days=1)
        return format_day(yesterday), format_day(yesterday)

    if key == "this-week":
        return format_day(week_start(today)), format_day(today)

    if key == "last-week":
        start = week_start(today) - timedelta(days=7)
        return format_day(start), format_day(start + timedelta(days=6))

    if key == "this-month":
        return format_day(today.replace(day=1)), format_day(today)

    if key == "last-month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return format_day(last_day.replace(day=1)), format_day(last_day)

    explicit = _parse_explicit_range((period or "").strip().lower())
    if explicit:
        return explicit

    logger.debug(f"Unrecognised period '{period}', using trailing {DEFAULT_PERIOD_DAYS} days")
    return format_day(today - timedelta(days=DEFAULT_PERIOD_DAYS)), format_day(today)


def _parse_explicit_range(text: str) -> Optional[Tuple[str, str]]:
    """Explicit single day or day range, start and end swapped if reversed"""
    try:
        if re.fullmatch(_DATE_RE, text):
            day = parse_day(text)
            return format_day(day), format_day(day)

        match = _RANGE_RE.match(text)
        if match:
            start, end = sorted([parse_day(match.group(1)), parse_day(match.group(2))])
            return format_day(start), format_day(end)
    except ValueError:
        return None
    return None


def detect_period(text: str, default: str = "today") -> str:
    """
    Find a period keyword inside free text ("how many calories this week?")

    Returns:
        Canonical period key, or default if none is mentioned
    """
    lower = text.lower()

    date_range = re.search(rf"{_DATE_RE}(?:\s*(?:\.\.|to)\s*{_DATE_RE})?", lower)
    if date_range:
        return date_range.group(0)

    # Longest phrases first so "last week" wins over "week"
    for phrase in sorted(PERIOD_ALIASES, key=len, reverse=True):
        if re.search(rf"\b{re.escape(phrase)}\b", lower):
            return PERIOD_ALIASES[phrase]
    return default


def parse_time_from_text(text: str, now: datetime) -> Optional[datetime]:
    """
    Extract when something happened from a time hint in the text

    Examples:
        "at 8:30am", "at 7pm"           latest past occurrence (today or yesterday)
        "2 hours ago", "45 mins ago"    relative to now
        "this morning" / "afternoon" / "evening" / "tonight"
        "earlier today"                 two hours ago

    Args:
        text: User input
        now: Current timezone-aware datetime

    Returns:
        Timezone-aware datetime, or None when the text has no time hint
        (the caller then uses the current time)
    """
    lower = text.lower()

    match = re.search(r"\bat (\d{1,2}):(\d{2})\s*(am|pm)?\b", lower)
    if match:
        hour = _to_24h(int(match.group(1)), match.group(3))
        minute = int(match.group(2))
        if hour < 24 and minute < 60:
            return _latest_past(now, hour, minute)

    match = re.search(r"\bat (\d{1,2})\s*(am|pm)\b", lower)
    if match:
        hour = _to_24h(int(match.group(1)), match.group(2))
        if hour < 24:
            return _latest_past(now, hour, 0)

    match = re.search(r"\b(\d+)\s*(?:hours?|hrs?)\s+ago\b", lower)
    if match:
        return now - timedelta(hours=int(match.group(1)))

    match = re.search(r"\b(\d+)\s*(?:minutes?|mins?)\s+ago\b", lower)
    if match:
        return now - timedelta(minutes=int(match.group(1)))

    times_of_day = [
        (r"\b(this|in the) morning\b", time(8, 0)),
        (r"\b(this|in the) afternoon\b", time(14, 0)),
        (r"\b(this|in the) evening\b", time(18, 0)),
        (r"\btonight\b|\bat night\b", time(21, 0)),
    ]
    for pattern, moment in times_of_day:
        if re.search(pattern, lower):
            return now.replace(hour=moment.hour, minute=moment.minute, second=0, microsecond=0)

    if re.search(r"\bearlier today\b", lower):
        return now - timedelta(hours=2)

    return None


def _to_24h(hour: int, meridiem: Optional[str]) -> int:
    if meridiem == "pm" and hour < 12:
        return hour + 12
    if meridiem == "am" and hour == 12:
        return 0
    return hour


def _latest_past(now: datetime, hour: int, minute: int) -> datetime:
    """That clock time today, or yesterday if it has not happened yet"""
    moment = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if moment > now:
        moment -= timedelta(days=1)
    return moment
