"""
Date and Time utilities

This module handles schedule timestamp parsing and the configured hour offset.
Centralizes all date parsing logic to maintain consistency across the application.
"""
from datetime import datetime, timedelta, timezone
import logging
import math
import re

logger = logging.getLogger(__name__)

MAX_OFFSET_HOURS = 48

_XMLTV_TIME_RE = re.compile(r'^(\d{14})(?:\s*([+\-]\d{4}))?')


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def normalize_offset_hours(value: object) -> float:
    """
    Normalize a configured hour offset

    Strings are parsed as floats. Anything unparsable, non-finite or outside
    +/-48h resets to 0.

    Args:
        value: Raw offset from the user configuration

    Returns:
        Offset in hours
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            logger.debug(f"Ignoring unparsable EPG offset: {value!r}")
            return 0.0

    if not isinstance(value, (int, float)):
        return 0.0

    offset = float(value)
    if not math.isfinite(offset) or abs(offset) > MAX_OFFSET_HOURS:
        logger.debug(f"Ignoring out-of-range EPG offset: {value!r}")
        return 0.0
    return offset


def _parse_zone(tz_part: str) -> timezone:
    """Build a fixed-offset zone from '+HHMM' / '-HHMM'"""
    tz_sign = 1 if tz_part[0] == '+' else -1
    tz_hours = int(tz_part[1:3])
    tz_mins = int(tz_part[3:5])
    # timezone() rejects offsets of 24h or more
    return timezone(tz_sign * timedelta(hours=tz_hours, minutes=tz_mins))


def parse_xmltv_time(time_str: str, offset_hours: float = 0.0) -> datetime:
    """
    Convert XMLTV time format to a UTC instant

    A valid zone offset is honoured; otherwise the digits are read as local
    wall-clock time of the serving process. The configured hour offset is
    then added.

    Args:
        time_str: XMLTV time like '20080715003000 -0600'
        offset_hours: Normalized hour offset to add

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the value is neither XMLTV nor ISO8601, or the
            shifted instant falls outside the representable datetime range
    """
    if not time_str:
        raise DateFormatError("Empty XMLTV time")

    match = _XMLTV_TIME_RE.match(time_str.strip())
    try:
        if match:
            instant = _xmltv_instant(time_str, match.group(1), match.group(2))
        else:
            instant = parse_iso8601_to_utc(time_str)

        if offset_hours:
            instant = instant + timedelta(seconds=offset_hours * 3600)

        return instant.astimezone(timezone.utc)
    except (OverflowError, OSError) as e:
        # Years 1 and 9999 overflow once a zone or offset is applied
        raise DateFormatError(f"XMLTV time out of range: '{time_str}'") from e


def _xmltv_instant(time_str: str, base: str, tz_part: str | None) -> datetime:
    try:
        naive = datetime.strptime(base, '%Y%m%d%H%M%S')
    except ValueError as e:
        raise DateFormatError(f"Invalid XMLTV time: '{time_str}'") from e

    if tz_part:
        try:
            return naive.replace(tzinfo=_parse_zone(tz_part))
        except ValueError:
            logger.debug(f"Invalid zone offset in '{time_str}', using local time")
    return naive.astimezone()


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-10-09T00:00:00Z')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = date_str.replace('Z', '+00:00') if date_str.endswith('Z') else date_str
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
