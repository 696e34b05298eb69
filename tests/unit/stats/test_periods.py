from datetime import datetime, timedelta, timezone

import pytest

from src.app.stats.constants import Period
from src.app.stats.periods import ALL_TIME_BOUNDS, PeriodBounds, bounds_for, iter_bounds_between

LA = 'America/Los_Angeles'


def ms_before(moment: datetime) -> datetime:
    return moment - timedelta(milliseconds=1)


class TestBoundsFor:
    def test_hourly_truncates_to_the_hour(self):
        bounds = bounds_for(Period.HOURLY, datetime(2025, 6, 10, 10, 37, 12))
        assert bounds == PeriodBounds(datetime(2025, 6, 10, 10), ms_before(datetime(2025, 6, 10, 11)))

    def test_daily_in_utc(self):
        bounds = bounds_for(Period.DAILY, datetime(2025, 6, 10, 14))
        assert bounds.start == datetime(2025, 6, 10)
        assert bounds.end == datetime(2025, 6, 10, 23, 59, 59, 999000)

    def test_daily_follows_the_user_timezone(self):
        """
        02:00 UTC on new years day is still the evening of Dec 31 in Los Angeles
        """
        bounds = bounds_for(Period.DAILY, datetime(2025, 1, 1, 2), LA)
        assert bounds.start == datetime(2024, 12, 31, 8)
        assert bounds.end == ms_before(datetime(2025, 1, 1, 8))

    def test_daily_accepts_aware_instants(self):
        instant = datetime(2025, 6, 10, 1, tzinfo=timezone(timedelta(hours=2)))
        bounds = bounds_for(Period.DAILY, instant)
        # 01:00+02:00 is 23:00 the day before in UTC
        assert bounds.start == datetime(2025, 6, 9)

    def test_daily_on_a_short_dst_day(self):
        bounds = bounds_for(Period.DAILY, datetime(2025, 3, 9, 12), LA)
        assert bounds.start == datetime(2025, 3, 9, 8)
        assert bounds.end_exclusive == datetime(2025, 3, 10, 7)
        assert bounds.end_exclusive - bounds.start == timedelta(hours=23)

    def test_daily_on_a_long_dst_day(self):
        bounds = bounds_for(Period.DAILY, datetime(2025, 11, 2, 20), LA)
        assert bounds.start == datetime(2025, 11, 2, 7)
        assert bounds.end_exclusive - bounds.start == timedelta(hours=25)

    @pytest.mark.parametrize('timezone_name', [None, '', 'Not/AZone', 'utc+3'])
    def test_unknown_timezone_behaves_like_utc(self, timezone_name):
        instant = datetime(2025, 1, 1, 2)
        assert bounds_for(Period.DAILY, instant, timezone_name) == bounds_for(Period.DAILY, instant, 'UTC')

    def test_weekly_starts_on_monday(self):
        wednesday = datetime(2025, 6, 11, 9)
        sunday_night = datetime(2025, 6, 15, 23, 30)
        bounds = bounds_for(Period.WEEKLY, wednesday)
        assert bounds.start == datetime(2025, 6, 9)
        assert bounds.end == ms_before(datetime(2025, 6, 16))
        assert bounds_for(Period.WEEKLY, sunday_night) == bounds

    def test_weekly_ignores_the_user_timezone(self):
        instant = datetime(2025, 6, 16, 2)
        assert bounds_for(Period.WEEKLY, instant, LA) == bounds_for(Period.WEEKLY, instant)

    def test_monthly_handles_leap_february(self):
        bounds = bounds_for(Period.MONTHLY, datetime(2024, 2, 15))
        assert bounds.start == datetime(2024, 2, 1)
        assert bounds.end == ms_before(datetime(2024, 3, 1))

    def test_monthly_in_december_rolls_the_year(self):
        bounds = bounds_for(Period.MONTHLY, datetime(2025, 12, 31, 23))
        assert bounds.end_exclusive == datetime(2026, 1, 1)

    def test_yearly(self):
        bounds = bounds_for(Period.YEARLY, datetime(2025, 12, 31, 23, 59, 59))
        assert bounds.start == datetime(2025, 1, 1)
        assert bounds.end == ms_before(datetime(2026, 1, 1))

    def test_all_time_is_unbounded(self):
        bounds = bounds_for(Period.ALL_TIME, datetime(2025, 6, 10))
        assert bounds == ALL_TIME_BOUNDS
        assert bounds.is_unbounded
        assert bounds.end_exclusive is None

    def test_accepts_period_values(self):
        assert bounds_for('daily', datetime(2025, 6, 10, 14)) == bounds_for(Period.DAILY, datetime(2025, 6, 10, 14))

    def test_unknown_period_raises(self):
        with pytest.raises(ValueError):
            bounds_for('fortnightly', datetime(2025, 6, 10))


class TestPeriodBounds:
    def test_contains_is_half_open(self):
        bounds = bounds_for(Period.DAILY, datetime(2025, 6, 10))
        assert bounds.contains(datetime(2025, 6, 10))
        assert bounds.contains(datetime(2025, 6, 10, 23, 59, 59, 999999))
        assert not bounds.contains(datetime(2025, 6, 11))
        assert not bounds.contains(datetime(2025, 6, 9, 23, 59, 59))

    def test_all_time_contains_everything(self):
        assert ALL_TIME_BOUNDS.contains(datetime(1901, 1, 1))


class TestIterBoundsBetween:
    def test_daily_range_is_inclusive(self):
        days = list(iter_bounds_between(Period.DAILY, datetime(2025, 6, 10, 5), datetime(2025, 6, 12, 0)))
        assert [bounds.start for bounds in days] == [
            datetime(2025, 6, 10),
            datetime(2025, 6, 11),
            datetime(2025, 6, 12),
        ]

    def test_weekly_range_across_months(self):
        weeks = list(iter_bounds_between(Period.WEEKLY, datetime(2025, 6, 28), datetime(2025, 7, 8)))
        assert [bounds.start for bounds in weeks] == [
            datetime(2025, 6, 23),
            datetime(2025, 6, 30),
            datetime(2025, 7, 7),
        ]

    def test_daily_range_in_timezone(self):
        days = list(iter_bounds_between(Period.DAILY, datetime(2025, 1, 1, 2), datetime(2025, 1, 1, 9), LA))
        assert [bounds.start for bounds in days] == [datetime(2024, 12, 31, 8), datetime(2025, 1, 1, 8)]

    def test_all_time_yields_once(self):
        assert list(iter_bounds_between(Period.ALL_TIME, datetime(2020, 1, 1), datetime(2025, 1, 1))) == [
            ALL_TIME_BOUNDS
        ]
