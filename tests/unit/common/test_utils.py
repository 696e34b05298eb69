"""Unit tests for common utility functions."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.common.utils import (
    coerce_cost,
    coerce_count,
    get_zone_or_none,
    is_valid_timezone,
    safe_datetime_parse,
    to_naive_utc,
)


class TestCoerceCount:
    @pytest.mark.parametrize(
        'value,expected',
        [
            (5, 5),
            (0, 0),
            (2.5, 3),
            (2.49, 2),
            ('7', 7),
            ('7.5', 8),
            (-1, 0),
            ('-4', 0),
            (None, 0),
            (True, 0),
            ('lots', 0),
            (float('inf'), 0),
            (float('nan'), 0),
            ([], 0),
            (Decimal('3.2'), 3),
        ],
    )
    def test_coercion(self, value, expected):
        assert coerce_count(value) == expected

    def test_large_counts_survive(self):
        assert coerce_count(2**40) == 2**40


class TestCoerceCost:
    @pytest.mark.parametrize(
        'value,expected',
        [
            (0.125, 0.125),
            (1, 1.0),
            ('0.5', 0.5),
            (Decimal('2.25'), 2.25),
            (None, None),
            (False, None),
            ('n/a', None),
            (float('inf'), None),
        ],
    )
    def test_coercion(self, value, expected):
        assert coerce_cost(value) == expected


class TestDatetimes:
    def test_safe_datetime_parse_handles_empty(self):
        assert safe_datetime_parse(None) is None
        assert safe_datetime_parse('') is None

    def test_safe_datetime_parse_passes_datetimes_through(self):
        moment = datetime(2025, 6, 10)
        assert safe_datetime_parse(moment) is moment

    def test_safe_datetime_parse_iso(self):
        assert safe_datetime_parse('2025-06-10') == datetime(2025, 6, 10)
        assert safe_datetime_parse('2025-06-10T10:00:00Z') == datetime(2025, 6, 10, 10, tzinfo=timezone.utc)

    def test_safe_datetime_parse_raises_on_garbage(self):
        with pytest.raises(ValueError):
            safe_datetime_parse('not a date')

    def test_to_naive_utc(self):
        aware = datetime(2025, 6, 10, 12, tzinfo=timezone(timedelta(hours=2)))
        assert to_naive_utc(aware) == datetime(2025, 6, 10, 10)
        assert to_naive_utc(datetime(2025, 6, 10, 12)) == datetime(2025, 6, 10, 12)


class TestTimezones:
    def test_known_zone(self):
        assert is_valid_timezone('Europe/Berlin')
        assert get_zone_or_none('Europe/Berlin') is not None

    @pytest.mark.parametrize('name', [None, '', 'Mars/Olympus', 42])
    def test_unknown_zone(self, name):
        assert not is_valid_timezone(name)
