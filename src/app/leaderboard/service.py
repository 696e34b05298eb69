import math
from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import distinct, func, or_

from src import settings
from src.app.leaderboard.domains import (
    ApplicationTotals,
    GrandTotal,
    LeaderboardEntry,
    LeaderboardPage,
    UserStatsSummary,
)
from src.app.leaderboard.exceptions import InvalidLeaderboardQuery
from src.app.stats.constants import AGGREGATE_MEASURES, ALL_TIME_PERIOD_START, Application, Period, SortOrder
from src.app.stats.models import MessageStats, UserStats
from src.app.users.models import User, UserPreferences
from src.common.domain import to_camel
from src.common.nanoid import NanoIdType
from src.common.utils import safe_datetime_parse, to_naive_utc, utc_now
from src.network.database import db

TOKENS_SORT_KEY = 'tokens'
DEFAULT_SORT_KEY = 'cost'

# Accept both the camelCase names clients see and the column names
_SORTABLE: dict[str, str] = {
    **{measure: measure for measure in AGGREGATE_MEASURES},
    **{to_camel(measure): measure for measure in AGGREGATE_MEASURES},
    TOKENS_SORT_KEY: TOKENS_SORT_KEY,
}


def _summed_columns() -> list[Any]:
    return [func.coalesce(func.sum(getattr(UserStats, m)), 0).label(m) for m in AGGREGATE_MEASURES]


def _tokens_expression() -> Any:
    # Same definition as StatTotals.tokens
    return func.coalesce(
        func.sum(
            UserStats.input_tokens
            + UserStats.output_tokens
            + UserStats.cache_creation_tokens
            + UserStats.cache_read_tokens
        ),
        0,
    )


def _totals_from_row(row: Any) -> dict[str, Any]:
    totals = {measure: int(getattr(row, measure)) for measure in AGGREGATE_MEASURES}
    totals['cost'] = float(row.cost)
    return totals


class LeaderboardService:
    @staticmethod
    def get_leaderboard(
        period: str = Period.ALL_TIME.value,
        application: str | None = None,
        sort_by: str = DEFAULT_SORT_KEY,
        sort_order: str = SortOrder.DESC.value,
        page: int = 1,
        page_size: int | None = None,
        now: datetime | None = None,
    ) -> LeaderboardPage:
        """
        Ranks users on the buckets that contain `now`. Every user is matched
        against their own daily bucket, so "today" follows their timezone.
        """
        if page_size is None:
            page_size = settings.LEADERBOARD_DEFAULT_PAGE_SIZE
        LeaderboardService._validate(period, application, sort_by, sort_order, page, page_size)
        now = to_naive_utc(now) if now else utc_now()

        query = (
            db.session.query(UserStats.user_id, User.username, User.display_name, *_summed_columns())
            .join(User, User.id == UserStats.user_id)
            .outerjoin(UserPreferences, UserPreferences.user_id == UserStats.user_id)
            .filter(
                UserStats.period == period,
                or_(UserPreferences.opt_out_public.is_(None), UserPreferences.opt_out_public.is_(False)),
            )
            .group_by(UserStats.user_id, User.username, User.display_name)
        )
        if period == Period.ALL_TIME.value:
            query = query.filter(UserStats.period_start == ALL_TIME_PERIOD_START)
        else:
            query = query.filter(UserStats.period_start <= now, UserStats.period_end >= now)
        if application:
            query = query.filter(UserStats.application == application)

        count = db.session.query(func.count()).select_from(query.subquery()).scalar() or 0

        column = _SORTABLE[sort_by]
        sort_expression = _tokens_expression() if column == TOKENS_SORT_KEY else func.sum(getattr(UserStats, column))
        sort_expression = sort_expression.asc() if sort_order == SortOrder.ASC.value else sort_expression.desc()
        rows = query.order_by(sort_expression, UserStats.user_id).offset((page - 1) * page_size).limit(page_size)

        entries = [
            LeaderboardEntry(
                rank=(page - 1) * page_size + index,
                user_id=row.user_id,
                username=row.username,
                display_name=row.display_name,
                **_totals_from_row(row),
            )
            for index, row in enumerate(rows, 1)
        ]
        return LeaderboardPage(
            results=entries,
            count=count,
            page=page,
            page_count=math.ceil(count / page_size),
            page_size=page_size,
            period=period,
            application=application,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    @staticmethod
    def _validate(
        period: str, application: str | None, sort_by: str, sort_order: str, page: int, page_size: int
    ) -> None:
        if not Period.has(period):
            raise InvalidLeaderboardQuery(message=f'Invalid period, expected one of {Period.list_all()}')
        if application and not Application.has(application):
            raise InvalidLeaderboardQuery(message='Invalid application parameter')
        if sort_by not in _SORTABLE:
            raise InvalidLeaderboardQuery(message='Invalid sortBy parameter')
        if not SortOrder.has(sort_order):
            raise InvalidLeaderboardQuery(message='Invalid sortOrder parameter')
        if page < 1:
            raise InvalidLeaderboardQuery(message='Page must be >= 1')
        if page_size < 1 or page_size > settings.LEADERBOARD_MAX_PAGE_SIZE:
            raise InvalidLeaderboardQuery(
                message=f'Page size must be between 1 and {settings.LEADERBOARD_MAX_PAGE_SIZE}'
            )


class UserStatsSummaryService:
    """
    A user's own view of their aggregates: the buckets of one period kind,
    per application totals and a grand total
    """

    @staticmethod
    def get_summary(
        user_id: NanoIdType,
        period: str = Period.DAILY.value,
        application: str | None = None,
        start: str | None = None,
        end: str | None = None,
    ) -> UserStatsSummary:
        if not Period.has(period):
            raise InvalidLeaderboardQuery(message=f'Invalid period, expected one of {Period.list_all()}')
        if application and not Application.has(application):
            raise InvalidLeaderboardQuery(message='Invalid application parameter')
        try:
            range_start = safe_datetime_parse(start)
            range_end = safe_datetime_parse(end)
        except ValueError:
            raise InvalidLeaderboardQuery(message='start and end must be ISO 8601 dates')
        range_start = to_naive_utc(range_start) if range_start else None
        range_end = to_naive_utc(range_end) if range_end else None

        clauses: list[Any] = [UserStats.user_id == user_id, UserStats.period == period]
        if application:
            clauses.append(UserStats.application == application)
        if period != Period.ALL_TIME.value:
            if range_start:
                clauses.append(UserStats.period_end >= range_start)
            if range_end:
                clauses.append(UserStats.period_start <= range_end)
        buckets = UserStats.list(*clauses, ordering=['period_start', 'application'])

        conversations = UserStatsSummaryService._conversations(user_id, application, range_start, range_end)
        models = UserStatsSummaryService._models(user_id, application, range_start, range_end)

        per_application: dict[str, dict[str, Any]] = defaultdict(lambda: dict.fromkeys(AGGREGATE_MEASURES, 0))
        for bucket in buckets:
            sums = per_application[bucket.application]
            for measure in AGGREGATE_MEASURES:
                sums[measure] += getattr(bucket, measure)

        totals = {
            name: ApplicationTotals(conversations=conversations.get(name, 0), models=models.get(name, []), **sums)
            for name, sums in per_application.items()
        }
        grand = dict.fromkeys(AGGREGATE_MEASURES, 0)
        for sums in per_application.values():
            for measure in AGGREGATE_MEASURES:
                grand[measure] += sums[measure]

        starts = [bucket.period_start for bucket in buckets if bucket.period_start is not None]
        return UserStatsSummary(
            period=period,
            buckets=buckets,
            totals=totals,
            grand_total=GrandTotal(
                applications=sorted(totals),
                conversations=sum(conversations.values()),
                models=sorted({model for name in totals for model in models.get(name, [])}),
                days_tracked=UserStatsSummaryService._days_tracked(user_id, application, range_start, range_end),
                first_period_start=min(starts) if starts else None,
                last_period_start=max(starts) if starts else None,
                **grand,
            ),
        )

    @staticmethod
    def _raw_rows(
        *columns: Any,
        user_id: NanoIdType,
        application: str | None,
        start: datetime | None,
        end: datetime | None,
    ) -> Any:
        query = db.session.query(*columns).filter(MessageStats.user_id == user_id)
        if application:
            query = query.filter(MessageStats.application == application)
        if start:
            query = query.filter(MessageStats.date >= start)
        if end:
            query = query.filter(MessageStats.date <= end)
        return query

    @staticmethod
    def _conversations(
        user_id: NanoIdType,
        application: str | None,
        start: datetime | None,
        end: datetime | None,
    ) -> dict[str, int]:
        """
        Distinct conversations per application, counted from raw rows
        """
        query = UserStatsSummaryService._raw_rows(
            MessageStats.application,
            func.count(distinct(MessageStats.conversation_hash)),
            user_id=user_id,
            application=application,
            start=start,
            end=end,
        )
        return {name: int(count) for name, count in query.group_by(MessageStats.application)}

    @staticmethod
    def _models(
        user_id: NanoIdType,
        application: str | None,
        start: datetime | None,
        end: datetime | None,
    ) -> dict[str, list[str]]:
        query = UserStatsSummaryService._raw_rows(
            MessageStats.application,
            MessageStats.model,
            user_id=user_id,
            application=application,
            start=start,
            end=end,
        )
        models: dict[str, list[str]] = defaultdict(list)
        for name, model in query.filter(MessageStats.model.isnot(None)).distinct().order_by(MessageStats.model):
            models[name].append(model)
        return models

    @staticmethod
    def _days_tracked(
        user_id: NanoIdType,
        application: str | None,
        start: datetime | None,
        end: datetime | None,
    ) -> int:
        """
        Days with any activity, counted on the daily buckets so days follow the user's timezone
        """
        query = db.session.query(func.count(distinct(UserStats.period_start))).filter(
            UserStats.user_id == user_id,
            UserStats.period == Period.DAILY.value,
        )
        if application:
            query = query.filter(UserStats.application == application)
        if start:
            query = query.filter(UserStats.period_end >= start)
        if end:
            query = query.filter(UserStats.period_start <= end)
        return int(query.scalar() or 0)
