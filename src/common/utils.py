import datetime
import math
from decimal import Decimal
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

UTC = datetime.timezone.utc


def safe_datetime_parse(
    dt: Union[str, datetime.datetime, None],
) -> Optional[datetime.datetime]:
    """
    Ensures a datetime is returned with valid string or datetime
    and does not raise for None
    """
    if isinstance(dt, datetime.datetime):
        return dt

    if not dt:
        return None

    return date_parser.isoparse(dt)


def to_naive_utc(dt: datetime.datetime) -> datetime.datetime:
    """
    Timestamps are stored as naive UTC, naive input is assumed to be UTC already
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def get_zone_or_none(name: str | None) -> ZoneInfo | None:
    """
    IANA zone lookup that never raises
    """
    if not name or not isinstance(name, str):
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def is_valid_timezone(name: str | None) -> bool:
    return get_zone_or_none(name) is not None


def coerce_count(value: Any) -> int:
    """
    Counters are non-negative integers. Fractions round half up,
    anything unparseable or negative collapses to 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return int(math.floor(number + 0.5))


def coerce_cost(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        value = float(value)
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


def utc_now() -> datetime.datetime:
    """
    Naive UTC now, matching how timestamps are stored
    """
    return datetime.datetime.now(UTC).replace(tzinfo=None)
