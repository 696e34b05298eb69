from datetime import datetime

from pydantic import computed_field

from src.app.stats.domains import StatMeasures, UserStatsRead
from src.common.domain import BaseDomain, PaginatedResponse


class StatTotals(StatMeasures):
    cost: float = 0.0
    assistant_messages: int = 0
    user_messages: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tokens(self) -> int:
        """
        Input, output, cache creation and cache read tokens. `cached_tokens`
        repeats the two cache kinds and is not added again.
        """
        return self.input_tokens + self.output_tokens + self.cache_creation_tokens + self.cache_read_tokens


class LeaderboardEntry(StatTotals):
    rank: int
    user_id: str
    username: str
    display_name: str | None = None


class LeaderboardPage(PaginatedResponse):
    results: list[LeaderboardEntry]
    period: str
    application: str | None
    sort_by: str
    sort_order: str


class ApplicationTotals(StatTotals):
    conversations: int = 0
    models: list[str] = []


class GrandTotal(ApplicationTotals):
    applications: list[str]
    days_tracked: int = 0
    first_period_start: datetime | None = None
    last_period_start: datetime | None = None


class UserStatsSummary(BaseDomain):
    period: str
    buckets: list[UserStatsRead]
    totals: dict[str, ApplicationTotals]
    grand_total: GrandTotal
