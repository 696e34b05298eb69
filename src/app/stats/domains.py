from datetime import datetime
from typing import Any, NamedTuple, Optional

from pydantic import ConfigDict, Field, ValidationInfo, field_validator

from src.app.stats.constants import (
    ALL_TIME_PERIOD_START,
    INTEGER_MEASURES,
    MESSAGE_STATS_PK_ABBREV,
    USER_STATS_PK_ABBREV,
    Application,
    MessageRole,
    Period,
)
from src.common.domain import BaseDomain, BaseDomainConfig, InboundDomain
from src.common.nanoid import NanoId, NanoIdType
from src.common.utils import coerce_cost, coerce_count, to_naive_utc


class BucketKey(NamedTuple):
    """
    Identifies one aggregate bucket of a user. Values are plain strings so
    keys hash the same whether built from enums or read back from storage.
    """

    period: str
    application: str
    period_start: datetime | None


class RowPlacement(NamedTuple):
    """
    Where a stored row sat before it was overwritten, its old buckets need a
    recompute too. The owner differs from the uploader when another user
    uploaded the same global hash before.
    """

    application: str
    date: datetime
    user_id: str | None = None


class StatMeasures(BaseDomain):
    """
    The summable counters, kept in the same order as INTEGER_MEASURES
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    cached_tokens: int = 0
    reasoning_tokens: int = 0
    tool_calls: int = 0
    terminal_commands: int = 0
    file_searches: int = 0
    file_content_searches: int = 0
    files_read: int = 0
    files_added: int = 0
    files_edited: int = 0
    files_deleted: int = 0
    lines_read: int = 0
    lines_added: int = 0
    lines_edited: int = 0
    lines_deleted: int = 0
    bytes_read: int = 0
    bytes_added: int = 0
    bytes_edited: int = 0
    bytes_deleted: int = 0
    code_lines: int = 0
    docs_lines: int = 0
    data_lines: int = 0
    media_lines: int = 0
    config_lines: int = 0
    other_lines: int = 0
    todos_created: int = 0
    todos_completed: int = 0
    todos_in_progress: int = 0
    todo_writes: int = 0
    todo_reads: int = 0

    def measures(self) -> dict[str, int]:
        return {measure: getattr(self, measure) for measure in INTEGER_MEASURES}


# Inbound
class UploadedStats(StatMeasures):
    """
    The `stats` object of an uploaded message. Counters are never rejected,
    bad values collapse to 0.
    """

    model_config = InboundDomain.model_config

    cost: Optional[float] = None

    @field_validator(*INTEGER_MEASURES, mode='before')
    @classmethod
    def normalize_measure(cls, value: Any) -> int:
        return coerce_count(value)

    @field_validator('cost', mode='before')
    @classmethod
    def normalize_cost(cls, value: Any) -> Optional[float]:
        return coerce_cost(value)


class MessageStatsUpload(InboundDomain):
    global_hash: str = Field(min_length=1)
    application: Application
    role: MessageRole
    date: datetime
    project_hash: str
    conversation_hash: str
    local_hash: Optional[str] = None
    uuid: Optional[str] = None
    session_name: Optional[str] = None
    model: Optional[str] = None
    file_types: Any = None
    stats: UploadedStats

    @field_validator('date')
    @classmethod
    def store_as_naive_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    def to_create(self, user_id: NanoIdType) -> 'MessageStatsCreate':
        return MessageStatsCreate(
            user_id=user_id,
            global_hash=self.global_hash,
            application=self.application,
            role=self.role,
            date=self.date,
            project_hash=self.project_hash,
            conversation_hash=self.conversation_hash,
            local_hash=self.local_hash,
            uuid=self.uuid,
            session_name=self.session_name,
            model=self.model,
            file_types=self.file_types,
            cost=self.stats.cost,
            **self.stats.measures(),
        )


# Raw rows
class MessageStatsCreate(StatMeasures):
    id: Optional[NanoIdType] = Field(default_factory=lambda: NanoId.gen(abbrev=MESSAGE_STATS_PK_ABBREV))
    user_id: NanoIdType
    global_hash: str
    application: Application
    role: MessageRole
    date: datetime
    project_hash: str
    conversation_hash: str
    local_hash: Optional[str] = None
    uuid: Optional[str] = None
    session_name: Optional[str] = None
    model: Optional[str] = None
    file_types: Any = None
    cost: Optional[float] = None


class MessageStatsRead(StatMeasures):
    id: NanoIdType
    user_id: NanoIdType
    global_hash: str
    application: Application
    role: MessageRole
    date: datetime
    project_hash: str
    conversation_hash: str
    local_hash: Optional[str]
    uuid: Optional[str]
    session_name: Optional[str]
    model: Optional[str]
    file_types: Any
    cost: Optional[float]
    created_at: datetime
    modified_at: Optional[datetime]


# Aggregates
class UserStatsCreate(StatMeasures):
    id: Optional[NanoIdType] = Field(default_factory=lambda: NanoId.gen(abbrev=USER_STATS_PK_ABBREV))
    user_id: NanoIdType
    period: Period
    application: Application
    period_start: datetime
    period_end: Optional[datetime] = None
    cost: float = 0
    assistant_messages: int = 0
    user_messages: int = 0


class UserStatsRead(StatMeasures):
    id: NanoIdType
    user_id: NanoIdType
    period: Period
    application: Application
    period_start: Optional[datetime]
    period_end: Optional[datetime]
    cost: float
    assistant_messages: int
    user_messages: int
    created_at: datetime
    modified_at: Optional[datetime]

    @field_validator('period_start')
    @classmethod
    def unbounded_all_time(cls, value: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        if info.data.get('period') == Period.ALL_TIME.value and value == ALL_TIME_PERIOD_START:
            return None
        return value

    @property
    def key(self) -> BucketKey:
        return BucketKey(period=self.period, application=self.application, period_start=self.period_start)


# Results
class RecalculationResult(BaseDomain):
    messages_processed: int
    aggregates_produced: int


class UploadResponse(BaseDomain):
    success: bool
    message: str
    processed: int
    buckets_recalculated: int


class RecalculateStatsResponse(BaseDomain):
    success: bool
    message: str
    messages_processed: int
    aggregates_produced: int


class DeleteStatsResponse(BaseDomain):
    success: bool
    message: str
    messages_deleted: int
    buckets_recalculated: int


class DateRange(BaseDomain):
    start: datetime
    end: datetime


class DeletePreviewResponse(BaseDomain):
    success: bool
    message_count: int
    affected_days: int
    date_range: DateRange
    applications: list[str]


class PurgeResult(BaseDomain):
    messages_deleted: int
    aggregates_deleted: int


# Export
class ModelDayStats(BaseDomain):
    input_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0


class DayStats(BaseDomain):
    model_config = ConfigDict(**{**BaseDomainConfig, 'protected_namespaces': ()})

    model_stats: dict[str, ModelDayStats] = Field(default_factory=dict)


class AnalyzerStats(BaseDomain):
    name: str
    daily_stats: dict[str, DayStats] = Field(default_factory=dict)


class StatsExportResponse(BaseDomain):
    analyzer_stats: list[AnalyzerStats]
