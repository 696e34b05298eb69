import re
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Sequence

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import ColumnElement, and_, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src import settings
from src.app.stats.aggregator import BucketAggregator
from src.app.stats.buckets import AffectedBucketTracker
from src.app.stats.constants import EXPORT_MEASURES, UNKNOWN_MODEL, Application, Period
from src.app.stats.domains import (
    AnalyzerStats,
    BucketKey,
    DateRange,
    DayStats,
    DeletePreviewResponse,
    DeleteStatsResponse,
    MessageStatsUpload,
    ModelDayStats,
    PurgeResult,
    RecalculateStatsResponse,
    RowPlacement,
    StatsExportResponse,
    UploadResponse,
)
from src.app.stats.exceptions import InvalidStatsQuery, StorageError, UploadValidationError
from src.app.stats.ingestor import RawStatIngestor
from src.app.stats.models import MessageStats, UserStats
from src.app.stats.periods import iter_bounds_between
from src.app.stats.recalculation import FullRecalculationDriver
from src.app.users.service import UserService
from src.common.nanoid import NanoIdType
from src.common.timing import StageTimer
from src.common.utils import safe_datetime_parse, to_naive_utc
from src.network.database import db

_MONTH_PATTERN = re.compile(r'^\d{4}-\d{2}$')
_DATE_ONLY_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def _describe_error(error: dict[str, Any]) -> str:
    location = '.'.join(str(part) for part in error.get('loc', ()))
    return f'{location}: {error["msg"]}' if location else error['msg']


class StatsUploadService:
    """
    Incremental path: ingest a batch, work out which buckets it touched
    and re-sum exactly those
    """

    def __init__(self, session: Session, user_service: UserService):
        self.session = session
        self.user_service = user_service

    @classmethod
    def factory(cls) -> 'StatsUploadService':
        return cls(session=db.session, user_service=UserService.factory())

    @staticmethod
    def validate_batch(payload: Any) -> list[MessageStatsUpload]:
        """
        All or nothing, a single bad message rejects the whole batch
        """
        if not isinstance(payload, list):
            raise UploadValidationError(message='Request body must be an array of messages')

        for index, message in enumerate(payload):
            if not isinstance(message, dict) or not isinstance(message.get('stats'), dict):
                raise UploadValidationError(message=f'Message {index} is missing a stats object')

        messages = []
        for index, message in enumerate(payload):
            try:
                messages.append(MessageStatsUpload.model_validate(message))
            except ValidationError as e:
                raise UploadValidationError(message=f'Message {index} is invalid, {_describe_error(e.errors()[0])}')
        return messages

    def upload(self, user_id: NanoIdType, payload: Any, timezone_override: str | None = None) -> UploadResponse:
        timer = StageTimer('stats upload', enabled=settings.UPLOAD_TIMING)

        with timer.stage('prepare'):
            messages = self.validate_batch(payload)
            timezone = self.user_service.resolve_timezone(user_id=user_id, override=timezone_override)

        ingestor = RawStatIngestor(self.session)
        with timer.stage('upsert'):
            processed = ingestor.ingest(user_id=user_id, rows=messages)

        own_placements = [p for p in ingestor.previous_placements if p.user_id == user_id]
        tracker = AffectedBucketTracker()
        tracker.add_rows(messages, timezone).add_rows(own_placements, timezone)
        with timer.stage('recalculate'):
            aggregator = BucketAggregator(self.session)
            recomputed = aggregator.recompute_many(user_id, tracker.keys(), timezone)
            recomputed += self._recompute_previous_owners(aggregator, user_id, ingestor.previous_placements)

        timer.log(user_id=user_id, messages=processed, buckets=recomputed)
        logger.info('stats uploaded', user_id=user_id, processed=processed, buckets=recomputed)
        return UploadResponse(
            success=True,
            message=f'Successfully processed {processed} messages',
            processed=processed,
            buckets_recalculated=recomputed,
        )

    def _recompute_previous_owners(
        self, aggregator: BucketAggregator, user_id: NanoIdType, placements: Sequence[RowPlacement]
    ) -> int:
        """
        Rows taken over from another user leave that user's buckets behind,
        they are re-summed in the previous owner's own timezone
        """
        by_owner: dict[str, list[RowPlacement]] = defaultdict(list)
        for placement in placements:
            if placement.user_id is not None and placement.user_id != user_id:
                by_owner[placement.user_id].append(placement)

        recomputed = 0
        for owner_id, owner_placements in by_owner.items():
            timezone = self.user_service.get_timezone(user_id=owner_id)
            keys = AffectedBucketTracker().add_rows(owner_placements, timezone).keys()
            recomputed += aggregator.recompute_many(owner_id, keys, timezone)
            logger.info(
                'stats moved between users', user_id=user_id, previous_owner=owner_id, rows=len(owner_placements)
            )
        return recomputed


class StatsRecalculationService:
    def __init__(self, session: Session, user_service: UserService):
        self.session = session
        self.user_service = user_service

    @classmethod
    def factory(cls) -> 'StatsRecalculationService':
        return cls(session=db.session, user_service=UserService.factory())

    def recalculate(self, user_id: NanoIdType) -> RecalculateStatsResponse:
        timezone = self.user_service.get_timezone(user_id=user_id)
        result = FullRecalculationDriver(self.session).recalculate(user_id=user_id, timezone=timezone)
        return RecalculateStatsResponse(
            success=True,
            message=(
                f'Recalculated stats from {result.messages_processed} messages '
                f'into {result.aggregates_produced} aggregated records'
            ),
            messages_processed=result.messages_processed,
            aggregates_produced=result.aggregates_produced,
        )


class StatsDeletionService:
    def __init__(self, session: Session, user_service: UserService):
        self.session = session
        self.user_service = user_service

    @classmethod
    def factory(cls) -> 'StatsDeletionService':
        return cls(session=db.session, user_service=UserService.factory())

    @staticmethod
    def parse_range(raw_start: str | None, raw_end: str | None) -> tuple[datetime, datetime]:
        """
        Inclusive range, a bare end date covers that whole day
        """
        if not raw_start or not raw_end:
            raise InvalidStatsQuery(message='startDate and endDate are required')
        try:
            start = safe_datetime_parse(raw_start)
            end = safe_datetime_parse(raw_end)
        except ValueError:
            raise InvalidStatsQuery(message='startDate and endDate must be ISO 8601 dates')

        start, end = to_naive_utc(start), to_naive_utc(end)  # type: ignore[arg-type]
        if _DATE_ONLY_PATTERN.match(raw_end.strip()):
            end = end + timedelta(days=1) - timedelta(milliseconds=1)
        if start > end:
            raise InvalidStatsQuery(message='startDate must not be after endDate')
        return start, end

    def delete_range(
        self,
        user_id: NanoIdType,
        start: datetime,
        end: datetime,
        applications: Sequence[str] | None = None,
    ) -> DeleteStatsResponse:
        applications = [str(application) for application in applications or Application.list_all()]
        timezone = self.user_service.get_timezone(user_id=user_id)

        # Every stored bucket in the range, whatever timezone its day was cut in
        existing = self._existing_bucket_keys(user_id, start, end, applications)
        keys = AffectedBucketTracker().add_keys(existing).keys()

        try:
            deleted = self.session.execute(
                delete(MessageStats).where(*self._range_clauses(user_id, start, end, applications))
            ).rowcount
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(context={'user_id': user_id, 'error': str(e)}) from e

        recomputed = BucketAggregator(self.session).recompute_many(user_id, keys, timezone)
        logger.info('stats deleted', user_id=user_id, messages=deleted, buckets=recomputed)
        return DeleteStatsResponse(
            success=True,
            message=f'Deleted {deleted} messages',
            messages_deleted=deleted,
            buckets_recalculated=recomputed,
        )

    def preview(
        self,
        user_id: NanoIdType,
        start: datetime,
        end: datetime,
        applications: Sequence[str] | None = None,
    ) -> DeletePreviewResponse:
        """
        What delete_range would remove, nothing is written
        """
        applications = [str(application) for application in applications or Application.list_all()]
        timezone = self.user_service.get_timezone(user_id=user_id)

        message_count = self.session.execute(
            select(func.count())
            .select_from(MessageStats)
            .where(*self._range_clauses(user_id, start, end, applications))
        ).scalar_one()
        return DeletePreviewResponse(
            success=True,
            message_count=message_count,
            # Calendar days of the user the range touches
            affected_days=sum(1 for _ in iter_bounds_between(Period.DAILY, start, end, timezone)),
            date_range=DateRange(start=start, end=end),
            applications=applications,
        )

    def purge(self, user_id: NanoIdType) -> PurgeResult:
        """
        Drops every raw row and aggregate of a user
        """
        messages_deleted = self.session.execute(delete(MessageStats).where(MessageStats.user_id == user_id)).rowcount
        aggregates_deleted = self.session.execute(delete(UserStats).where(UserStats.user_id == user_id)).rowcount
        logger.info('stats purged', user_id=user_id, messages=messages_deleted, aggregates=aggregates_deleted)
        return PurgeResult(messages_deleted=messages_deleted, aggregates_deleted=aggregates_deleted)

    @staticmethod
    def _range_clauses(
        user_id: NanoIdType, start: datetime, end: datetime, applications: Sequence[str]
    ) -> list[ColumnElement[bool]]:
        return [
            MessageStats.user_id == user_id,
            MessageStats.application.in_(applications),
            MessageStats.date >= start,
            MessageStats.date <= end,
        ]

    def _existing_bucket_keys(
        self, user_id: NanoIdType, start: datetime, end: datetime, applications: Sequence[str]
    ) -> set[BucketKey]:
        query = select(UserStats.period, UserStats.application, UserStats.period_start).where(
            UserStats.user_id == user_id,
            UserStats.application.in_(applications),
            or_(
                UserStats.period == Period.ALL_TIME.value,
                and_(UserStats.period_start <= end, UserStats.period_end >= start),
            ),
        )
        return {
            BucketKey(
                period=period,
                application=application,
                period_start=None if period == Period.ALL_TIME.value else period_start,
            )
            for period, application, period_start in self.session.execute(query)
        }


class StatsExportService:
    """
    Per application, day and model token totals in the shape the CLI prints
    """

    def __init__(self, session: Session):
        self.session = session

    @classmethod
    def factory(cls) -> 'StatsExportService':
        return cls(session=db.session)

    @staticmethod
    def parse_month(month: str | None) -> tuple[datetime, datetime] | None:
        if not month:
            return None
        if not _MONTH_PATTERN.match(month):
            raise InvalidStatsQuery(message='Invalid month format. Expected: YYYY-MM (e.g., 2025-12)')

        year, month_number = (int(part) for part in month.split('-'))
        if not 1 <= month_number <= 12:
            raise InvalidStatsQuery(message='Invalid month value. Expected: 01-12')

        start = datetime(year, month_number, 1)
        end = datetime(year + 1, 1, 1) if month_number == 12 else datetime(year, month_number + 1, 1)
        return start, end

    def export(self, user_id: NanoIdType, month: str | None = None) -> StatsExportResponse:
        month_range = self.parse_month(month)
        day = func.date(MessageStats.date)
        query = (
            select(
                MessageStats.application,
                day.label('day'),
                MessageStats.model,
                *[func.coalesce(func.sum(getattr(MessageStats, m)), 0).label(m) for m in EXPORT_MEASURES],
                func.coalesce(func.sum(MessageStats.cost), 0.0).label('cost'),
            )
            .where(MessageStats.user_id == user_id)
            .group_by(MessageStats.application, day, MessageStats.model)
            .order_by(MessageStats.application, day, MessageStats.model)
        )
        if month_range is not None:
            query = query.where(MessageStats.date >= month_range[0], MessageStats.date < month_range[1])

        analyzers: dict[str, dict[str, dict[str, ModelDayStats]]] = defaultdict(lambda: defaultdict(dict))
        for row in self.session.execute(query):
            # sqlite hands back a string, postgres a date
            day_key = str(row.day)[:10]
            model_key = row.model or UNKNOWN_MODEL
            totals = analyzers[row.application][day_key].setdefault(model_key, ModelDayStats())
            for measure in EXPORT_MEASURES:
                setattr(totals, measure, getattr(totals, measure) + int(getattr(row, measure)))
            totals.cost += float(row.cost)

        return StatsExportResponse(
            analyzer_stats=[
                AnalyzerStats(
                    name=application,
                    daily_stats={
                        day_key: DayStats(model_stats=dict(models)) for day_key, models in daily.items()
                    },
                )
                for application, daily in analyzers.items()
            ]
        )
