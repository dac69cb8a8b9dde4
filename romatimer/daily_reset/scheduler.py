"""Daily reset timing.

Pure functions of a :class:`UserConfiguration` and the current instant.
Nothing here logs, retries or touches the database; callers own that.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from ..configuration import (
    SESSION_OVERRIDE_RANGE,
    DailyResetTimeType,
    UserConfiguration,
    parse_custom_time,
)
from ..clock import resolve_timezone
from ..errors import InvalidResetTime, OutOfRange


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def resolve_reset_time(config: UserConfiguration) -> tuple[int, int]:
    """Wall-clock ``(hour, minute)`` of the reset; midnight when unset or malformed."""
    time_type = config.daily_reset_time_type
    if time_type == DailyResetTimeType.HOUR:
        hour = config.daily_reset_time_hour
        if hour is not None and 0 <= hour <= 23:
            return hour, 0
    elif time_type == DailyResetTimeType.CUSTOM:
        parsed = parse_custom_time(config.daily_reset_time_custom)
        if parsed is not None:
            return parsed
    return 0, 0


def localize(day: date, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    """Return the UTC instant of *day* at ``hour:minute`` local time in *tz*.

    Raises :class:`InvalidResetTime` for a wall time skipped by a DST
    transition.  A repeated wall time resolves to its first occurrence.
    """
    local = datetime.combine(day, time(hour, minute), tzinfo=tz)
    instant = local.astimezone(timezone.utc)
    if instant.astimezone(tz).replace(tzinfo=None) != local.replace(tzinfo=None):
        raise InvalidResetTime(
            f"{day.isoformat()} {hour:02d}:{minute:02d} does not exist in {tz.key}"
        )
    return instant


def calculate_next_reset_time(config: UserConfiguration, now: datetime) -> datetime:
    """Next UTC instant at which the daily counter is zeroed.

    Returns *now* unchanged when daily reset is disabled; that value is a
    sentinel, not a scheduled instant.  A reset time equal to *now* counts
    as already passed.
    """
    now = _as_utc(now)
    if not config.daily_reset_enabled:
        return now

    tz = resolve_timezone(config.timezone)
    hour, minute = resolve_reset_time(config)
    today = now.astimezone(tz).date()

    candidate = localize(today, hour, minute, tz)
    if candidate <= now:
        candidate = localize(today + timedelta(days=1), hour, minute, tz)
    return candidate


def todays_reset_time(config: UserConfiguration, now: datetime) -> datetime:
    """UTC instant of the reset on the local calendar date of *now*."""
    now = _as_utc(now)
    tz = resolve_timezone(config.timezone)
    hour, minute = resolve_reset_time(config)
    return localize(now.astimezone(tz).date(), hour, minute, tz)


def should_reset_today(config: UserConfiguration, now: datetime) -> bool:
    """True when no reset has happened yet on the user's current local date."""
    if not config.daily_reset_enabled:
        return False
    tz = resolve_timezone(config.timezone)
    if config.last_daily_reset_utc is None:
        return True
    last_local = datetime.fromtimestamp(config.last_daily_reset_utc, tz)
    return last_local.date() != _as_utc(now).astimezone(tz).date()


def get_current_session_count(config: UserConfiguration) -> int:
    if config.manual_session_override is not None:
        return config.manual_session_override
    return config.today_session_count


def validate_session_count(value: int) -> int:
    lo, hi = SESSION_OVERRIDE_RANGE
    if isinstance(value, bool) or not isinstance(value, int) or not lo <= value <= hi:
        raise OutOfRange(lo, hi, value)
    return value


def daily_reset_cron_expression(config: UserConfiguration) -> str:
    hour, minute = resolve_reset_time(config)
    return f"{minute} {hour} * * *"
