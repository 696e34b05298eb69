import random
from datetime import datetime, timedelta

from src import settings
from src.app.stats.constants import Application, MessageRole, Period
from src.app.stats.models import MessageStats, UserStats
from src.app.stats.recalculation import FullRecalculationDriver
from src.app.stats.service import StatsRecalculationService, StatsUploadService
from src.app.stats.tasks import recalculate_user_stats_task
from src.app.users.domains import UserPreferencesUpdate
from src.app.users.service import UserService
from tests.factories.stats import build_message, get_bucket, snapshot_buckets


def spread_messages(count: int) -> list[dict]:
    """
    Messages across two applications, both roles and a couple of months.
    Costs are exact binary fractions so sums do not depend on order.
    """
    start = datetime(2025, 5, 28, 22)
    messages = []
    for index in range(count):
        messages.append(
            build_message(
                start + timedelta(hours=7 * index),
                global_hash=f'hash-{index}',
                application=Application.CLAUDE_CODE.value if index % 3 else Application.GEMINI_CLI.value,
                role=MessageRole.USER.value if index % 4 == 0 else MessageRole.ASSISTANT.value,
                input_tokens=index * 10,
                output_tokens=index,
                lines_edited=index % 5,
                cost=0.25 * (index % 4),
            )
        )
    return messages


def test_recalculation_matches_incremental_uploads(user):
    messages = spread_messages(40)
    shuffled = random.Random(7).sample(messages, len(messages))
    service = StatsUploadService.factory()
    for batch_start in range(0, len(shuffled), 9):
        service.upload(user.id, shuffled[batch_start : batch_start + 9])

    incremental = snapshot_buckets(user.id)
    result = FullRecalculationDriver(UserStats._get_session()).recalculate(user_id=user.id)

    assert result.messages_processed == 40
    assert result.aggregates_produced == len(incremental)
    assert snapshot_buckets(user.id) == incremental


def test_recalculation_matches_in_a_timezone(pacific_user):
    service = StatsUploadService.factory()
    service.upload(pacific_user.id, spread_messages(12))
    incremental = snapshot_buckets(pacific_user.id)

    FullRecalculationDriver(UserStats._get_session()).recalculate(user_id=pacific_user.id)

    assert snapshot_buckets(pacific_user.id) == incremental


def test_recalculation_rebuckets_after_timezone_change(user):
    StatsUploadService.factory().upload(user.id, [build_message('2025-01-01T02:00:00Z', input_tokens=3)])
    assert get_bucket(user.id, Period.DAILY.value, datetime(2025, 1, 1)).input_tokens == 3

    UserService.factory().update_preferences(user.id, UserPreferencesUpdate(timezone='America/Los_Angeles'))
    StatsRecalculationService.factory().recalculate(user_id=user.id)

    assert get_bucket(user.id, Period.DAILY.value, datetime(2025, 1, 1)) is None
    assert get_bucket(user.id, Period.DAILY.value, datetime(2024, 12, 31, 8)).input_tokens == 3


def test_recalculation_without_rows_clears_aggregates(user):
    StatsUploadService.factory().upload(user.id, [build_message('2025-06-10T10:00:00Z')])
    UserStats.delete(UserStats.user_id == user.id)

    result = FullRecalculationDriver(UserStats._get_session()).recalculate(user_id=user.id)

    assert result.messages_processed == 1
    assert result.aggregates_produced == len(Period)

    MessageStats.delete(MessageStats.user_id == user.id)
    result = FullRecalculationDriver(UserStats._get_session()).recalculate(user_id=user.id)
    assert result.messages_processed == 0
    assert result.aggregates_produced == 0
    assert UserStats.count(user_id=user.id) == 0


def test_recalculation_only_touches_one_user(user, other_user):
    service = StatsUploadService.factory()
    service.upload(user.id, [build_message('2025-06-10T10:00:00Z', input_tokens=1)])
    service.upload(other_user.id, [build_message('2025-06-10T10:00:00Z', input_tokens=2)])
    other_before = snapshot_buckets(other_user.id)

    FullRecalculationDriver(UserStats._get_session()).recalculate(user_id=user.id)

    assert snapshot_buckets(other_user.id) == other_before


def test_recalculation_streams_in_small_batches(user):
    StatsUploadService.factory().upload(user.id, spread_messages(15))
    incremental = snapshot_buckets(user.id)

    FullRecalculationDriver(UserStats._get_session(), yield_per=2).recalculate(user_id=user.id)

    assert snapshot_buckets(user.id) == incremental


def test_recalculation_inserts_in_configured_chunks(user, monkeypatch):
    StatsUploadService.factory().upload(user.id, spread_messages(15))
    incremental = snapshot_buckets(user.id)
    monkeypatch.setattr(settings, 'STATS_AGGREGATE_INSERT_CHUNK_SIZE', 4)

    driver = FullRecalculationDriver(UserStats._get_session())
    result = driver.recalculate(user_id=user.id)

    assert driver.insert_chunk_size == 4
    assert result.aggregates_produced == len(incremental)
    assert snapshot_buckets(user.id) == incremental


def test_recalculate_service_message(user):
    StatsUploadService.factory().upload(user.id, [build_message('2025-06-10T10:00:00Z')])

    response = StatsRecalculationService.factory().recalculate(user_id=user.id)

    assert response.success
    assert response.messages_processed == 1
    assert response.aggregates_produced == len(Period)
    assert response.message == f'Recalculated stats from 1 messages into {len(Period)} aggregated records'


def test_background_task_recalculates(user):
    StatsUploadService.factory().upload(user.id, [build_message('2025-06-10T10:00:00Z', input_tokens=4)])
    UserStats.delete(UserStats.user_id == user.id)

    recalculate_user_stats_task(user.id)

    assert get_bucket(user.id, Period.ALL_TIME.value, None).input_tokens == 4
