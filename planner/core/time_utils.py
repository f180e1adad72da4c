"""
Timezone-aware time-of-day parsing and minute arithmetic.
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from planner.core.errors import ConfigInvalid, ProviderUnavailable

Number = Union[int, float]

_TIME_OF_DAY = re.compile(r"^\s*(\d{1,2}):(\d{2})")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def add_minutes(t: datetime, minutes: Number) -> datetime:
    return t + timedelta(minutes=minutes)


def subtract_minutes(t: datetime, minutes: Number) -> datetime:
    return t - timedelta(minutes=minutes)


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA timezone name."""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise ConfigInvalid(f"Unknown timezone: {tz_name!r}") from e


def split_time_of_day(value: str) -> tuple:
    """Return (hour, minute) from 'HH:MM'. Trailing text such as ' (EET)' is ignored."""
    match = _TIME_OF_DAY.match(str(value))
    if not match:
        raise ProviderUnavailable(f"Malformed time of day: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ProviderUnavailable(f"Time of day out of range: {value!r}")
    return hour, minute


def parse_time_of_day(value: str, tz_name: str, reference: datetime) -> datetime:
    """Interpret value as wall-clock time in tz_name on the calendar day of reference.

    If that instant is after reference, the previous day's occurrence is returned,
    so the result is never later than reference. Pass a future reference to get a
    future occurrence.
    """
    zone = get_zone(tz_name)
    hour, minute = split_time_of_day(value)
    local_ref = reference.astimezone(zone)
    result = datetime.combine(local_ref.date(), time(hour, minute), tzinfo=zone)
    if result > reference:
        result = datetime.combine(local_ref.date() - timedelta(days=1), time(hour, minute), tzinfo=zone)
    return result


def local_day_end(day: date, tz_name: str) -> datetime:
    """Last representable instant of a local calendar day."""
    zone = get_zone(tz_name)
    return datetime.combine(day, time(23, 59, 59, 999999), tzinfo=zone)


def local_today(tz_name: str, now: datetime) -> date:
    return now.astimezone(get_zone(tz_name)).date()


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime for the settings blob; None passes through."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_iso(value) -> Optional[datetime]:
    """Parse an ISO-8601 string from the settings blob; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
