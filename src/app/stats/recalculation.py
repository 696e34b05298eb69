from typing import Any

from loguru import logger
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src import settings
from src.app.stats.constants import (
    AGGREGATE_MEASURES,
    ALL_TIME_PERIOD_START,
    COST_MEASURE,
    INTEGER_MEASURES,
    MessageRole,
    Period,
)
from src.app.stats.domains import BucketKey, RecalculationResult
from src.app.stats.exceptions import StorageError
from src.app.stats.models import MessageStats, UserStats
from src.app.stats.periods import bounds_for
from src.app.users.constants import DEFAULT_TIMEZONE
from src.app.users.models import UserPreferences
from src.common.nanoid import NanoIdType


class FullRecalculationDriver:
    """
    Rebuilds every aggregate of a user from the raw rows. Used to recover
    from drift, the result matches what the incremental path produces.

    Runs as a single transaction so readers see either the old or the new set.
    """

    def __init__(self, session: Session, yield_per: int | None = None, insert_chunk_size: int | None = None) -> None:
        self.session = session
        self.yield_per = yield_per or settings.STATS_RECALCULATION_YIELD_PER
        self.insert_chunk_size = insert_chunk_size or settings.STATS_AGGREGATE_INSERT_CHUNK_SIZE

    def recalculate(self, user_id: NanoIdType, timezone: str | None = None) -> RecalculationResult:
        timezone = timezone or self._stored_timezone(user_id)
        try:
            self.session.execute(delete(UserStats).where(UserStats.user_id == user_id))
            buckets, processed = self._accumulate(user_id, timezone)
            rows = [self._to_mapping(user_id, key, sums) for key, sums in buckets.items()]
            for chunk in UserStats._chunks(rows, self.insert_chunk_size):
                self.session.execute(insert(UserStats.__table__), list(chunk))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(context={'user_id': user_id, 'error': str(e)}) from e

        logger.info('user stats recalculated', user_id=user_id, messages=processed, aggregates=len(rows))
        return RecalculationResult(messages_processed=processed, aggregates_produced=len(rows))

    def _accumulate(self, user_id: NanoIdType, timezone: str) -> tuple[dict[BucketKey, dict[str, Any]], int]:
        query = (
            select(
                MessageStats.application,
                MessageStats.role,
                MessageStats.date,
                MessageStats.cost,
                *[getattr(MessageStats, measure) for measure in INTEGER_MEASURES],
            )
            .where(MessageStats.user_id == user_id)
            .execution_options(yield_per=self.yield_per)
        )

        buckets: dict[BucketKey, dict[str, Any]] = {}
        processed = 0
        for row in self.session.execute(query):
            processed += 1
            values = row._asdict()
            for period in Period:
                bounds = bounds_for(period, row.date, timezone)
                key = BucketKey(period=period.value, application=row.application, period_start=bounds.start)
                sums = buckets.get(key)
                if sums is None:
                    sums = dict.fromkeys(AGGREGATE_MEASURES, 0)
                    sums[COST_MEASURE] = 0.0
                    sums['period_end'] = bounds.end
                    buckets[key] = sums

                for measure in INTEGER_MEASURES:
                    sums[measure] += values[measure] or 0
                sums[COST_MEASURE] += row.cost or 0.0
                if row.role == MessageRole.ASSISTANT.value:
                    sums['assistant_messages'] += 1
                elif row.role == MessageRole.USER.value:
                    sums['user_messages'] += 1

        return buckets, processed

    def _stored_timezone(self, user_id: NanoIdType) -> str:
        timezone = self.session.execute(
            select(UserPreferences.timezone).where(UserPreferences.user_id == user_id)
        ).scalar_one_or_none()
        return timezone or DEFAULT_TIMEZONE

    @staticmethod
    def _to_mapping(user_id: NanoIdType, key: BucketKey, sums: dict[str, Any]) -> dict[str, Any]:
        return {
            'id': UserStats.generate_id(),
            'user_id': user_id,
            'period': key.period,
            'application': key.application,
            'period_start': key.period_start or ALL_TIME_PERIOD_START,
            **sums,
        }
