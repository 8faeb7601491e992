"""
Date and Time utilities

This module handles all date/time parsing for guide timestamps and query parameters.
Centralizes all date parsing logic to maintain consistency across the application.
"""
from datetime import datetime, timezone, timedelta
import logging


logger = logging.getLogger(__name__)


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def _normalize_iso8601_string(date_str: str) -> str:
    """Normalize ISO8601 string by replacing 'Z' with '+00:00'"""
    return date_str.replace('Z', '+00:00') if date_str.endswith('Z') else date_str


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-10-09T00:00:00Z' or '2025-10-09T00:00:00+01:00')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = _normalize_iso8601_string(date_str)
        dt = datetime.fromisoformat(normalized)
    except (ValueError, AttributeError, TypeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e
    return ensure_utc(dt)


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600'. A missing offset is read as UTC.

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the timestamp or offset is malformed
    """
    parts = time_str.strip().split()
    if not parts:
        raise DateFormatError("Empty XMLTV timestamp")

    time_part = parts[0]  # YYYYMMDDHHMMSS
    tz_part = parts[1] if len(parts) > 1 else '+0000'

    # Some feeds glue the offset to the time ('20080715003000+0100')
    if len(parts) == 1 and len(time_part) > 14 and time_part[14] in '+-':
        time_part, tz_part = time_part[:14], time_part[14:]

    try:
        dt = datetime.strptime(time_part[:14], '%Y%m%d%H%M%S')
    except ValueError as e:
        raise DateFormatError(f"Invalid XMLTV timestamp: '{time_str}'") from e

    if len(tz_part) != 5 or tz_part[0] not in '+-' or not tz_part[1:].isdigit():
        raise DateFormatError(f"Invalid XMLTV timezone offset: '{time_str}'")

    tz_sign = 1 if tz_part[0] == '+' else -1
    tz_hours = int(tz_part[1:3])
    tz_mins = int(tz_part[3:5])
    offset = timedelta(minutes=tz_sign * (tz_hours * 60 + tz_mins))
    if abs(offset) >= timedelta(hours=24):
        raise DateFormatError(f"XMLTV timezone offset out of range: '{time_str}'")

    return dt.replace(tzinfo=timezone(offset)).astimezone(timezone.utc)


def ensure_utc(moment: datetime) -> datetime:
    """Read naive datetimes as UTC, convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
