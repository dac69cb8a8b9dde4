"""Tests for the pure daily reset computations."""

from datetime import date, datetime, timezone

import pytest

from romatimer.clock import resolve_timezone
from romatimer.configuration import DailyResetTimeType, UserConfiguration
from romatimer.daily_reset.scheduler import (
    calculate_next_reset_time,
    daily_reset_cron_expression,
    get_current_session_count,
    localize,
    resolve_reset_time,
    should_reset_today,
    todays_reset_time,
    validate_session_count,
)
from romatimer.errors import InvalidResetTime, InvalidTimezone, OutOfRange


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def ts(*args):
    return int(utc(*args).timestamp())


def config(**kw):
    kw.setdefault("daily_reset_enabled", True)
    return UserConfiguration(**kw)


# ═══════════════════════════════════════════════════════════════════════════
#  NEXT RESET TIME
# ═══════════════════════════════════════════════════════════════════════════


class TestCalculateNextResetTime:

    def test_midnight_already_passed(self):
        assert calculate_next_reset_time(config(), utc(2025, 1, 7, 10)) == utc(2025, 1, 8)

    def test_exactly_midnight_goes_to_tomorrow(self):
        assert calculate_next_reset_time(config(), utc(2025, 1, 7)) == utc(2025, 1, 8)

    def test_one_second_before_midnight(self):
        assert calculate_next_reset_time(config(), utc(2025, 1, 7, 23, 59, 59)) == utc(2025, 1, 8)

    def test_disabled_returns_now(self):
        now = utc(2025, 1, 7, 10)
        assert calculate_next_reset_time(config(daily_reset_enabled=False), now) == now

    def test_hour_later_today(self):
        cfg = config(daily_reset_time_type=DailyResetTimeType.HOUR, daily_reset_time_hour=15)
        assert calculate_next_reset_time(cfg, utc(2025, 1, 7, 10)) == utc(2025, 1, 7, 15)

    def test_hour_missing_falls_back_to_midnight(self):
        cfg = config(daily_reset_time_type=DailyResetTimeType.HOUR, daily_reset_time_hour=None)
        assert calculate_next_reset_time(cfg, utc(2025, 1, 7, 10)) == utc(2025, 1, 8)

    def test_custom_in_local_timezone(self):
        cfg = config(
            timezone="America/New_York",
            daily_reset_time_type=DailyResetTimeType.CUSTOM,
            daily_reset_time_custom="07:30",
        )
        # 05:00 EST, so 07:30 EST today is still ahead
        assert calculate_next_reset_time(cfg, utc(2025, 1, 7, 10)) == utc(2025, 1, 7, 12, 30)

    @pytest.mark.parametrize("custom", ["25:00", "07:60", "7h30", "", None])
    def test_malformed_custom_falls_back_to_midnight(self, custom):
        cfg = config(
            daily_reset_time_type=DailyResetTimeType.CUSTOM,
            daily_reset_time_custom=custom,
        )
        assert calculate_next_reset_time(cfg, utc(2025, 1, 7, 10)) == utc(2025, 1, 8)

    def test_positive_offset_zone(self):
        cfg = config(timezone="Asia/Tokyo")
        # 19:00 JST on Jan 7; next local midnight is Jan 8 00:00 JST
        assert calculate_next_reset_time(cfg, utc(2025, 1, 7, 10)) == utc(2025, 1, 7, 15)

    @pytest.mark.parametrize("name", ["Mars/Olympus", "America"])
    def test_invalid_timezone(self, name):
        with pytest.raises(InvalidTimezone):
            calculate_next_reset_time(config(timezone=name), utc(2025, 1, 7, 10))

    def test_region_name_is_not_a_timezone(self):
        with pytest.raises(InvalidTimezone):
            should_reset_today(config(timezone="America"), utc(2025, 1, 7, 10))

    def test_nonexistent_local_time(self):
        cfg = config(
            timezone="America/New_York",
            daily_reset_time_type=DailyResetTimeType.CUSTOM,
            daily_reset_time_custom="02:30",
        )
        # 2025-03-09 clocks jump 02:00 -> 03:00 in New York
        with pytest.raises(InvalidResetTime):
            calculate_next_reset_time(cfg, utc(2025, 3, 9, 5))

    def test_ambiguous_local_time_takes_first(self):
        cfg = config(
            timezone="America/New_York",
            daily_reset_time_type=DailyResetTimeType.CUSTOM,
            daily_reset_time_custom="01:30",
        )
        # 2025-11-02 01:30 happens twice; the EDT one is 05:30 UTC
        assert calculate_next_reset_time(cfg, utc(2025, 11, 2, 4)) == utc(2025, 11, 2, 5, 30)

    def test_result_is_utc(self):
        cfg = config(timezone="Europe/Berlin")
        assert calculate_next_reset_time(cfg, utc(2025, 1, 7, 10)).utcoffset().total_seconds() == 0


class TestLocalize:

    def test_plain(self):
        tz = resolve_timezone("Europe/Berlin")
        assert localize(date(2025, 7, 1), 9, 0, tz) == utc(2025, 7, 1, 7)

    def test_gap(self):
        tz = resolve_timezone("Europe/Berlin")
        with pytest.raises(InvalidResetTime):
            localize(date(2025, 3, 30), 2, 30, tz)


class TestTodaysResetTime:

    def test_ignores_whether_passed(self):
        cfg = config(daily_reset_time_type=DailyResetTimeType.HOUR, daily_reset_time_hour=6)
        assert todays_reset_time(cfg, utc(2025, 1, 7, 10)) == utc(2025, 1, 7, 6)


# ═══════════════════════════════════════════════════════════════════════════
#  SHOULD RESET TODAY
# ═══════════════════════════════════════════════════════════════════════════


class TestShouldResetToday:

    def test_disabled(self):
        assert should_reset_today(config(daily_reset_enabled=False), utc(2025, 1, 7, 10)) is False

    def test_never_reset(self):
        assert should_reset_today(config(last_daily_reset_utc=None), utc(2025, 1, 7, 10)) is True

    def test_reset_yesterday(self):
        cfg = config(last_daily_reset_utc=ts(2025, 1, 6, 12))
        assert should_reset_today(cfg, utc(2025, 1, 7, 10)) is True

    def test_reset_earlier_today(self):
        cfg = config(last_daily_reset_utc=ts(2025, 1, 7, 1))
        assert should_reset_today(cfg, utc(2025, 1, 7, 10)) is False

    def test_compares_local_dates(self):
        last = ts(2025, 1, 7, 7)    # Jan 6 23:00 in Los Angeles
        now = utc(2025, 1, 7, 10)   # Jan 7 02:00 in Los Angeles
        assert should_reset_today(config(timezone="America/Los_Angeles", last_daily_reset_utc=last), now) is True
        assert should_reset_today(config(timezone="UTC", last_daily_reset_utc=last), now) is False

    def test_invalid_timezone(self):
        with pytest.raises(InvalidTimezone):
            should_reset_today(config(timezone="Nowhere/Land"), utc(2025, 1, 7, 10))


# ═══════════════════════════════════════════════════════════════════════════
#  SESSION COUNT
# ═══════════════════════════════════════════════════════════════════════════


class TestSessionCount:

    def test_override_wins(self):
        assert get_current_session_count(config(today_session_count=3, manual_session_override=7)) == 7

    def test_zero_override_still_wins(self):
        assert get_current_session_count(config(today_session_count=3, manual_session_override=0)) == 0

    def test_no_override(self):
        assert get_current_session_count(config(today_session_count=3)) == 3

    @pytest.mark.parametrize("value", [0, 50, 100])
    def test_validate_in_range(self, value):
        assert validate_session_count(value) == value

    @pytest.mark.parametrize("value", [-1, 101])
    def test_validate_out_of_range(self, value):
        with pytest.raises(OutOfRange) as exc_info:
            validate_session_count(value)
        assert (exc_info.value.min, exc_info.value.max, exc_info.value.value) == (0, 100, value)


# ═══════════════════════════════════════════════════════════════════════════
#  RESET TIME RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════


class TestResolveResetTime:

    def test_midnight(self):
        assert resolve_reset_time(config()) == (0, 0)

    def test_hour(self):
        cfg = config(daily_reset_time_type=DailyResetTimeType.HOUR, daily_reset_time_hour=6)
        assert resolve_reset_time(cfg) == (6, 0)

    def test_custom(self):
        cfg = config(daily_reset_time_type=DailyResetTimeType.CUSTOM, daily_reset_time_custom="18:45")
        assert resolve_reset_time(cfg) == (18, 45)

    def test_cron_expression(self):
        cfg = config(daily_reset_time_type=DailyResetTimeType.CUSTOM, daily_reset_time_custom="07:30")
        assert daily_reset_cron_expression(cfg) == "30 7 * * *"
        assert daily_reset_cron_expression(config()) == "0 0 * * *"
