from fastapi import APIRouter, Depends, Query

from src.app.leaderboard.domains import LeaderboardPage, UserStatsSummary
from src.app.leaderboard.service import DEFAULT_SORT_KEY, LeaderboardService, UserStatsSummaryService
from src.app.stats.constants import Period, SortOrder
from src.app.users.domains import AuthenticatedUser
from src.app.users.guards import authorize_path_user
from src.network.database.decorator import read_only_route

router = APIRouter()


@router.get('/leaderboard', response_model=LeaderboardPage)
@read_only_route
def get_leaderboard(
    period: str = Query(default=Period.ALL_TIME.value),
    application: str | None = None,
    sort_by: str = Query(default=DEFAULT_SORT_KEY, alias='sortBy'),
    sort_order: str = Query(default=SortOrder.DESC.value, alias='sortOrder'),
    page: int = 1,
    page_size: int | None = Query(default=None, alias='pageSize'),
) -> LeaderboardPage:
    """Public ranking of users over the period containing now. Opted out users are hidden."""
    return LeaderboardService.get_leaderboard(
        period=period,
        application=application,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )


@router.get('/user/{user_id}/stats', response_model=UserStatsSummary)
def get_user_stats(
    user_id: str,
    period: str = Query(default=Period.DAILY.value),
    application: str | None = None,
    start: str | None = None,
    end: str | None = None,
    user: AuthenticatedUser = Depends(authorize_path_user),
) -> UserStatsSummary:
    """Aggregated stats of the caller for one period kind."""
    return UserStatsSummaryService.get_summary(
        user_id=user.id,
        period=period,
        application=application,
        start=start,
        end=end,
    )
