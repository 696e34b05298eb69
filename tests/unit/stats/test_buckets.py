from datetime import datetime

from src.app.stats.buckets import AffectedBucketTracker
from src.app.stats.constants import Application, Period
from src.app.stats.domains import BucketKey, RowPlacement

CLAUDE = Application.CLAUDE_CODE.value
CODEX = Application.CODEX_CLI.value


def test_rows_in_the_same_hour_share_every_bucket():
    tracker = AffectedBucketTracker().add_rows(
        [
            RowPlacement(application=CLAUDE, date=datetime(2025, 6, 10, 10, 5)),
            RowPlacement(application=CLAUDE, date=datetime(2025, 6, 10, 10, 55)),
        ]
    )
    assert len(tracker) == len(Period)


def test_rows_on_different_days_split_the_short_periods():
    tracker = AffectedBucketTracker().add_rows(
        [
            RowPlacement(application=CLAUDE, date=datetime(2025, 6, 10, 10)),
            RowPlacement(application=CLAUDE, date=datetime(2025, 6, 11, 9)),
        ]
    )
    periods = [key.period for key in tracker]
    assert periods.count(Period.HOURLY.value) == 2
    assert periods.count(Period.DAILY.value) == 2
    assert periods.count(Period.WEEKLY.value) == 1
    assert periods.count(Period.ALL_TIME.value) == 1
    assert len(tracker) == 8


def test_applications_never_share_a_bucket():
    tracker = AffectedBucketTracker()
    tracker.add(Period.DAILY, CLAUDE, datetime(2025, 6, 10, 10))
    tracker.add(Period.DAILY, CODEX, datetime(2025, 6, 10, 10))
    assert len(tracker) == 2


def test_keys_are_plain_values():
    tracker = AffectedBucketTracker()
    key = tracker.add(Period.DAILY, Application.CLAUDE_CODE, datetime(2025, 6, 10, 10))
    assert key == BucketKey(period='daily', application='claude_code', period_start=datetime(2025, 6, 10))
    assert BucketKey('daily', 'claude_code', datetime(2025, 6, 10)) in tracker


def test_daily_key_uses_the_timezone():
    tracker = AffectedBucketTracker()
    key = tracker.add(Period.DAILY, CLAUDE, datetime(2025, 1, 1, 2), 'America/Los_Angeles')
    assert key.period_start == datetime(2024, 12, 31, 8)


def test_all_time_key_has_no_start():
    tracker = AffectedBucketTracker()
    key = tracker.add(Period.ALL_TIME, CLAUDE, datetime(2025, 1, 1, 2))
    assert key.period_start is None


def test_keys_are_ordered_by_period_with_all_time_last():
    tracker = AffectedBucketTracker().add_rows(
        [
            RowPlacement(application=CODEX, date=datetime(2025, 6, 11, 9)),
            RowPlacement(application=CLAUDE, date=datetime(2025, 6, 10, 10)),
        ]
    )
    keys = tracker.keys()
    assert keys[0] == BucketKey(Period.HOURLY.value, CLAUDE, datetime(2025, 6, 10, 10))
    assert [key.period for key in keys[-2:]] == [Period.ALL_TIME.value, Period.ALL_TIME.value]
    assert keys == tracker.keys()


def test_add_range_covers_every_overlapping_bucket():
    tracker = AffectedBucketTracker().add_range(
        start=datetime(2025, 6, 10),
        end=datetime(2025, 6, 11, 23, 59, 59, 999000),
        applications=[CLAUDE, CODEX],
    )
    periods = [key.period for key in tracker]
    assert periods.count(Period.HOURLY.value) == 48 * 2
    assert periods.count(Period.DAILY.value) == 2 * 2
    assert periods.count(Period.WEEKLY.value) == 2
    assert periods.count(Period.MONTHLY.value) == 2
    assert periods.count(Period.YEARLY.value) == 2
    assert periods.count(Period.ALL_TIME.value) == 2
