from datetime import timedelta
from typing import Any, Iterable

from loguru import logger
from sqlalchemy import and_, case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.app.stats.constants import (
    AGGREGATE_MEASURES,
    ALL_TIME_PERIOD_START,
    COST_MEASURE,
    INTEGER_MEASURES,
    MessageRole,
    Period,
)
from src.app.stats.domains import BucketKey, UserStatsRead
from src.app.stats.exceptions import StorageError
from src.app.stats.models import USER_STATS_BUCKET_COLUMNS, MessageStats, UserStats
from src.app.stats.periods import ONE_MILLISECOND, PeriodBounds, bounds_for
from src.common.nanoid import NanoIdType

_ROW_COUNT = 'row_count'


def aggregate_columns() -> list[Any]:
    """
    One SUM per measure plus role counts, evaluated over message_stats
    """
    columns: list[Any] = [func.coalesce(func.sum(getattr(MessageStats, m)), 0).label(m) for m in INTEGER_MEASURES]
    columns.append(func.coalesce(func.sum(MessageStats.cost), 0.0).label(COST_MEASURE))
    columns.append(
        func.coalesce(func.sum(case((MessageStats.role == MessageRole.ASSISTANT.value, 1), else_=0)), 0).label(
            'assistant_messages'
        )
    )
    columns.append(
        func.coalesce(func.sum(case((MessageStats.role == MessageRole.USER.value, 1), else_=0)), 0).label(
            'user_messages'
        )
    )
    columns.append(func.count(MessageStats.id).label(_ROW_COUNT))
    return columns


def bucket_bounds(key: BucketKey, timezone: str | None = None) -> PeriodBounds:
    """
    Range covered by a stored bucket key. A daily bucket written under an
    earlier timezone preference keeps its own start and spans 24 hours.
    """
    if key.period == Period.ALL_TIME.value or key.period_start is None:
        return PeriodBounds(start=None, end=None)

    bounds = bounds_for(key.period, key.period_start, timezone)
    if bounds.start != key.period_start:
        return PeriodBounds(start=key.period_start, end=key.period_start + timedelta(days=1) - ONE_MILLISECOND)
    return bounds


def bucket_clause(user_id: NanoIdType, key: BucketKey) -> Any:
    return and_(
        UserStats.user_id == user_id,
        UserStats.period == key.period,
        UserStats.application == key.application,
        UserStats.period_start == (key.period_start or ALL_TIME_PERIOD_START),
    )


class BucketAggregator:
    """
    Recomputes aggregate buckets by re-summing every raw row in range.
    Nothing is ever added incrementally, so repeated or concurrent
    recomputes of a bucket converge on the same totals.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def recompute(self, user_id: NanoIdType, key: BucketKey, timezone: str | None = None) -> UserStatsRead | None:
        bounds = bucket_bounds(key, timezone)
        try:
            sums = self._sum_rows(user_id, key.application, bounds)
            if sums[_ROW_COUNT] == 0:
                # Nothing left in range, the bucket should not exist
                self.session.execute(delete(UserStats).where(bucket_clause(user_id, key)))
                self.session.commit()
                return None

            mapping = {
                'id': UserStats.generate_id(),
                'user_id': user_id,
                'period': key.period,
                'application': key.application,
                'period_start': key.period_start or ALL_TIME_PERIOD_START,
                'period_end': bounds.end,
                **{measure: sums[measure] for measure in AGGREGATE_MEASURES},
            }
            statement = UserStats.upsert_statement(
                [mapping],
                conflict_columns=USER_STATS_BUCKET_COLUMNS,
                update_columns=('period_end',) + AGGREGATE_MEASURES,
                session=self.session,
            )
            self.session.execute(statement)
            self.session.commit()

            query = select(UserStats).where(bucket_clause(user_id, key)).execution_options(populate_existing=True)
            instance = self.session.execute(query).scalar_one()
            return UserStats._to_domain(instance)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(context={'user_id': user_id, 'bucket': key._asdict(), 'error': str(e)}) from e

    def recompute_many(self, user_id: NanoIdType, keys: Iterable[BucketKey], timezone: str | None = None) -> int:
        """
        Buckets are recomputed one after another, each in its own transaction
        """
        recomputed = 0
        for key in keys:
            self.recompute(user_id, key, timezone)
            recomputed += 1
        logger.debug('buckets recomputed', user_id=user_id, buckets=recomputed)
        return recomputed

    def _sum_rows(self, user_id: NanoIdType, application: str, bounds: PeriodBounds) -> dict[str, Any]:
        query = select(*aggregate_columns()).where(
            MessageStats.user_id == user_id,
            MessageStats.application == application,
        )
        if not bounds.is_unbounded:
            query = query.where(MessageStats.date >= bounds.start, MessageStats.date < bounds.end_exclusive)

        row = self.session.execute(query).one()._asdict()
        # Postgres hands back numerics for sums of bigints
        sums = {measure: int(row[measure]) for measure in INTEGER_MEASURES}
        sums[COST_MEASURE] = float(row[COST_MEASURE])
        sums['assistant_messages'] = int(row['assistant_messages'])
        sums['user_messages'] = int(row['user_messages'])
        sums[_ROW_COUNT] = int(row[_ROW_COUNT])
        return sums
