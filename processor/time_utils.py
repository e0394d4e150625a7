"""
Epoch-millisecond helpers.

Events carry their times as integer epoch milliseconds. Day boundaries are
local midnights in the configured timezone, so every conversion takes the
timezone explicitly.
"""
from typing import Optional, Union

import pendulum
from pendulum import DateTime
from pendulum.tz.timezone import Timezone

ONE_SECOND = 1000
ONE_MINUTE = ONE_SECOND * 60
ONE_HOUR = ONE_MINUTE * 60
ONE_DAY = ONE_HOUR * 24

TimezoneLike = Union[str, Timezone, None]


def resolve_timezone(tz: TimezoneLike) -> Timezone:
    """
    Resolve a timezone name to a pendulum timezone.

    Args:
        tz: IANA name, timezone object, or None for the host's local zone

    Returns:
        pendulum Timezone
    """
    if tz is None:
        return pendulum.local_timezone()
    if isinstance(tz, str):
        return pendulum.timezone(tz)
    return tz


def from_millis(millis: int, tz: TimezoneLike = None) -> DateTime:
    """Convert epoch milliseconds to an aware DateTime in ``tz``."""
    seconds, remainder = divmod(int(millis), ONE_SECOND)
    dt = pendulum.from_timestamp(seconds, tz=resolve_timezone(tz))
    return dt.add(microseconds=remainder * 1000)


def to_millis(dt: DateTime) -> int:
    """Convert an aware DateTime to epoch milliseconds."""
    return dt.int_timestamp * ONE_SECOND + dt.microsecond // 1000


def start_of_day(millis: int, tz: TimezoneLike = None) -> int:
    """Local midnight at or before ``millis``."""
    return to_millis(from_millis(millis, tz).start_of('day'))


def end_of_day(millis: int, tz: TimezoneLike = None) -> int:
    """Last millisecond of the local day containing ``millis``."""
    return to_millis(from_millis(millis, tz).end_of('day'))


def add_days(millis: int, days: int, tz: TimezoneLike = None) -> int:
    """Add calendar days, keeping the local wall-clock time."""
    return to_millis(from_millis(millis, tz).add(days=days))


def now_millis(tz: Optional[str] = None) -> int:
    """Current time as epoch milliseconds."""
    return to_millis(pendulum.now(resolve_timezone(tz)))
