"""
Period boundaries for aggregate buckets.

Only the daily boundary follows the user's timezone, every other period
is computed in UTC. Bounds come back as naive UTC datetimes (how they
are stored) with an inclusive end one millisecond before the next period.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterator, NamedTuple

from dateutil.relativedelta import relativedelta

from src.app.stats.constants import Period
from src.common.utils import UTC, get_zone_or_none, to_naive_utc

ONE_MILLISECOND = timedelta(milliseconds=1)


class PeriodBounds(NamedTuple):
    start: datetime | None
    end: datetime | None

    @property
    def is_unbounded(self) -> bool:
        return self.start is None

    @property
    def end_exclusive(self) -> datetime | None:
        """
        First instant of the following period, rows are matched with date < end_exclusive
        """
        return None if self.end is None else self.end + ONE_MILLISECOND

    def contains(self, instant: datetime) -> bool:
        if self.is_unbounded:
            return True
        moment = to_naive_utc(instant)
        return self.start <= moment < self.end_exclusive  # type: ignore[operator]


ALL_TIME_BOUNDS = PeriodBounds(start=None, end=None)


def _local_midnight_as_utc(day: date, timezone: str | None) -> datetime:
    zone = get_zone_or_none(timezone)
    if zone is None:
        return datetime.combine(day, time.min)
    return to_naive_utc(datetime.combine(day, time.min, tzinfo=zone))


def _local_day(moment: datetime, timezone: str | None) -> date:
    zone = get_zone_or_none(timezone)
    if zone is None:
        return moment.date()
    return moment.replace(tzinfo=UTC).astimezone(zone).date()


def bounds_for(period: Period | str, instant: datetime, timezone: str | None = None) -> PeriodBounds:
    """
    Maps an instant onto the period that contains it.
    An unknown timezone behaves exactly like UTC.
    """
    period = Period(period)
    if period == Period.ALL_TIME:
        return ALL_TIME_BOUNDS

    moment = to_naive_utc(instant)
    if period == Period.HOURLY:
        start = moment.replace(minute=0, second=0, microsecond=0)
        next_start = start + timedelta(hours=1)
    elif period == Period.DAILY:
        local_day = _local_day(moment, timezone)
        start = _local_midnight_as_utc(local_day, timezone)
        # DST days are 23 or 25 hours long, the next local midnight closes the day
        next_start = _local_midnight_as_utc(local_day + timedelta(days=1), timezone)
    elif period == Period.WEEKLY:
        monday = moment.date() - timedelta(days=moment.weekday())
        start = datetime.combine(monday, time.min)
        next_start = start + timedelta(days=7)
    elif period == Period.MONTHLY:
        start = datetime(moment.year, moment.month, 1)
        next_start = start + relativedelta(months=1)
    else:
        start = datetime(moment.year, 1, 1)
        next_start = datetime(moment.year + 1, 1, 1)

    return PeriodBounds(start=start, end=next_start - ONE_MILLISECOND)


def iter_bounds_between(
    period: Period | str,
    start: datetime,
    end: datetime,
    timezone: str | None = None,
) -> Iterator[PeriodBounds]:
    """
    Every period of one kind overlapping the inclusive range [start, end]
    """
    period = Period(period)
    if period == Period.ALL_TIME:
        yield ALL_TIME_BOUNDS
        return

    range_end = to_naive_utc(end)
    bounds = bounds_for(period, start, timezone)
    while bounds.start <= range_end:  # type: ignore[operator]
        yield bounds
        bounds = bounds_for(period, bounds.end_exclusive, timezone)  # type: ignore[arg-type]
