import calendar
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.utils.errors import InvalidLocationError


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to UTC timezone-aware datetime.

    Args:
        dt: Datetime object to convert

    Returns:
        datetime: UTC timezone-aware datetime
    """
    if dt.tzinfo is None:
        # Assume naive datetime is in UTC
        return dt.replace(tzinfo=timezone.utc)
    else:
        return dt.astimezone(timezone.utc)


def to_epoch_millis(dt: datetime) -> int:
    """Convert a datetime to integer milliseconds since the Unix epoch."""
    return int(to_utc(dt).timestamp() * 1000)


def from_epoch_millis(millis: int) -> datetime:
    """Convert milliseconds since the Unix epoch to an aware UTC datetime."""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


@lru_cache(maxsize=512)
def get_zone(location: str) -> ZoneInfo:
    """
    Resolve an IANA location identifier (e.g. "Australia/Melbourne") to a zone.

    Raises:
        InvalidLocationError: If the location is not in the timezone database
    """
    if not location or not isinstance(location, str):
        raise InvalidLocationError(f"Invalid location: {location!r}")
    try:
        return ZoneInfo(location)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidLocationError(f"Unknown location: {location}") from e


def is_valid_location(location: str) -> bool:
    try:
        get_zone(location)
    except InvalidLocationError:
        return False
    return True


def local_now(location: str, now: Optional[datetime] = None) -> datetime:
    """
    Get the current wall-clock time at a location.

    Args:
        location: IANA location identifier
        now: Reference instant (defaults to the current UTC time)

    Returns:
        datetime: Timezone-aware datetime in the location's zone
    """
    return to_utc(now or utc_now()).astimezone(get_zone(location))


def next_occurrence_of_local_time(
    location: str, hour: int, minute: int, now: Optional[datetime] = None
) -> datetime:
    """
    Get the UTC instant at which the location's wall clock reads hour:minute:00.000
    on the location's current local date.

    Only today's occurrence is returned, even when it has already passed; the
    caller decides whether a past occurrence is skipped.

    Wall times falling into a DST gap resolve with the offset in effect before
    the transition, ambiguous wall times resolve to their first occurrence.

    Args:
        location: IANA location identifier
        hour: Local hour of day (0-23)
        minute: Local minute (0-59)
        now: Reference instant (defaults to the current UTC time)

    Returns:
        datetime: UTC timezone-aware datetime
    """
    zone = get_zone(location)
    local_today = local_now(location, now).date()
    local_target = datetime.combine(local_today, time(hour, minute), tzinfo=zone)
    return local_target.astimezone(timezone.utc)


def delivery_window(
    location: str,
    hour: int,
    minute: int,
    window: timedelta,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Get the current local delivery window [start, end) for a location, in UTC.

    start is today's local hour:minute occurrence and end is start + window.
    """
    start = next_occurrence_of_local_time(location, hour, minute, now)
    return start, start + window


def is_birthday_on(birth_date: date, local_date: date) -> bool:
    """
    Check whether a birth date is celebrated on a given calendar date.

    29 February birthdays are celebrated on 28 February in non-leap years.
    """
    if (birth_date.month, birth_date.day) == (local_date.month, local_date.day):
        return True
    return (
        birth_date.month == 2
        and birth_date.day == 29
        and local_date.month == 2
        and local_date.day == 28
        and not calendar.isleap(local_date.year)
    )


def candidate_month_days(now: Optional[datetime] = None) -> Set[Tuple[int, int]]:
    """
    Get every (month, day) that is "today" somewhere on Earth at the given instant.

    Local dates are at most one day away from the UTC date, so the UTC date
    and its neighbours cover every zone.
    """
    utc_today = to_utc(now or utc_now()).date()
    month_days = set()
    for offset in (-1, 0, 1):
        day = utc_today + timedelta(days=offset)
        month_days.add((day.month, day.day))
        if (day.month, day.day) == (2, 28) and not calendar.isleap(day.year):
            month_days.add((2, 29))
    return month_days
