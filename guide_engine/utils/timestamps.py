"""
Timestamp primitives

Centralizes parsing of broadcast (XMLTV) and media (subtitle) time tokens,
plus the instant conversions shared by the cache, queries and snapshots.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo
import logging
import re

from guide_engine.errors import MalformedTimestamp

logger = logging.getLogger(__name__)

BROADCAST_DIGITS = 14

_OFFSET_PATTERN = re.compile(r'^([+-])(\d{2}):?(\d{2})$')
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _is_ascii_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def _normalize_wall_clock(year: int, month: int, day: int, hour: int, minute: int, second: int) -> datetime:
    """
    Build a naive datetime, carrying overflowing fields into larger units.

    Month 13 becomes January of the next year, day 00 the last day of the
    previous month, hour 24 the next day and so on.
    """
    year, month_index = divmod(year * 12 + (month - 1), 12)
    try:
        first_of_month = datetime(year, month_index + 1, 1)
        return first_of_month + timedelta(days=day - 1, hours=hour, minutes=minute, seconds=second)
    except (ValueError, OverflowError) as e:
        raise MalformedTimestamp(f"Broadcast time out of supported range (year {year})") from e


def _parse_offset(token: str) -> timezone | None:
    """Parse a trailing '+HHMM' / '-HH:MM' offset token, None if absent or malformed"""
    match = _OFFSET_PATTERN.match(token.strip())
    if not match:
        return None

    sign = 1 if match.group(1) == '+' else -1
    delta = timedelta(hours=int(match.group(2)), minutes=int(match.group(3)))
    try:
        return timezone(sign * delta)
    except ValueError:
        logger.debug(f"Ignoring out-of-range offset token '{token}'")
        return None


def parse_broadcast_time(
    value: str,
    *,
    honor_offset: bool = True,
    default_tz: tzinfo = timezone.utc
) -> datetime:
    """
    Parse an XMLTV broadcast timestamp.

    The first 14 characters are split at fixed positions into
    YYYYMMDDHHmmss. Fields are not calendar validated; overflow is carried
    into the next unit instead.

    Args:
        value: Time token like '20080715003000 -0600'
        honor_offset: Apply the trailing offset token when present
        default_tz: Zone used when the offset is absent, malformed or ignored

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        MalformedTimestamp: If fewer than 14 leading digits are present or the
            normalized instant falls outside the supported year range
    """
    if not isinstance(value, str):
        raise MalformedTimestamp(f"Broadcast time must be a string, got {type(value).__name__}")

    token = value.strip()
    digits = token[:BROADCAST_DIGITS]
    if len(digits) < BROADCAST_DIGITS or not _is_ascii_digits(digits):
        raise MalformedTimestamp(f"Broadcast time needs {BROADCAST_DIGITS} leading digits: '{value}'")

    wall_clock = _normalize_wall_clock(
        int(digits[0:4]),
        int(digits[4:6]),
        int(digits[6:8]),
        int(digits[8:10]),
        int(digits[10:12]),
        int(digits[12:14]),
    )

    zone = default_tz
    if honor_offset:
        offset = _parse_offset(token[BROADCAST_DIGITS:])
        if offset is not None:
            zone = offset

    try:
        return wall_clock.replace(tzinfo=zone).astimezone(timezone.utc)
    except (ValueError, OverflowError) as e:
        raise MalformedTimestamp(f"Broadcast time out of supported range: '{value}'") from e


def parse_media_time(value: str, decimal_marks: str = ",.") -> float:
    """
    Parse a media timestamp 'HH:MM:SS.mmm' into seconds.

    Args:
        value: Time token
        decimal_marks: Characters accepted as the fraction separator

    Returns:
        Seconds as float

    Raises:
        MalformedTimestamp: If the token does not have exactly three numeric
            colon-separated components or the fraction is not numeric
    """
    token = value.strip()
    parts = token.split(':')
    if len(parts) != 3:
        raise MalformedTimestamp(f"Media time needs 3 components: '{value}'")

    hours, minutes, seconds = parts
    fraction = ''
    for mark in decimal_marks:
        if mark in seconds:
            seconds, _, fraction = seconds.partition(mark)
            if not _is_ascii_digits(fraction):
                raise MalformedTimestamp(f"Non-numeric fraction in media time: '{value}'")
            break

    if not all(_is_ascii_digits(part) for part in (hours, minutes, seconds)):
        raise MalformedTimestamp(f"Non-numeric component in media time: '{value}'")

    total = int(hours) * 3600 + int(minutes) * 60 + int(seconds)
    if fraction:
        return total + int(fraction) / 10 ** len(fraction)
    return float(total)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def epoch_millis(dt: datetime) -> int:
    """Milliseconds since the Unix epoch"""
    return (ensure_utc(dt) - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def resolve_timezone(name: str) -> tzinfo:
    """
    Resolve an IANA timezone name

    Args:
        name: Timezone name (IANA format or 'UTC')

    Returns:
        tzinfo instance
    """
    if name == "UTC":
        return timezone.utc
    return ZoneInfo(name)
