from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Float, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.app.stats.constants import MESSAGE_STATS_PK_ABBREV, USER_STATS_PK_ABBREV
from src.app.stats.domains import MessageStatsCreate, MessageStatsRead, UserStatsCreate, UserStatsRead
from src.common.model import BaseModel


class StatMeasuresMixin:
    """Summable 64 bit counters shared by raw rows and aggregates."""

    input_tokens: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    output_tokens: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cache_creation_tokens: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cache_read_tokens: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cached_tokens: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    reasoning_tokens: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    tool_calls: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    terminal_commands: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    file_searches: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    file_content_searches: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    files_read: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    files_added: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    files_edited: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    files_deleted: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    lines_read: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    lines_added: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    lines_edited: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    lines_deleted: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    bytes_read: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    bytes_added: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    bytes_edited: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    bytes_deleted: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    code_lines: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    docs_lines: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    data_lines: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    media_lines: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    config_lines: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    other_lines: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    todos_created: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    todos_completed: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    todos_in_progress: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    todo_writes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    todo_reads: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)


class MessageStats(StatMeasuresMixin, BaseModel[MessageStatsRead, MessageStatsCreate]):
    """One uploaded message, replaced wholesale when its global hash is uploaded again."""

    user_id: Mapped[str] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    global_hash: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    application: Mapped[str] = mapped_column(String(50), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    project_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    conversation_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    local_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    uuid: Mapped[str | None] = mapped_column(String(255), nullable=True)
    session_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Stored as sent, never summed
    file_types: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB, 'postgresql'), nullable=True)
    cost: Mapped[float | None] = mapped_column(Float, nullable=True)

    __tablename__ = 'message_stats'
    __pk_abbrev__ = MESSAGE_STATS_PK_ABBREV
    __read_domain__ = MessageStatsRead
    __create_domain__ = MessageStatsCreate

    __table_args__ = (
        Index('idx_message_stats_user_application_date', 'user_id', 'application', 'date'),
        Index('idx_message_stats_user_date', 'user_id', 'date'),
    )


class UserStats(StatMeasuresMixin, BaseModel[UserStatsRead, UserStatsCreate]):
    """Rolling aggregate of one user and application over one period."""

    user_id: Mapped[str] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)
    application: Mapped[str] = mapped_column(String(50), nullable=False)
    # All time buckets carry ALL_TIME_PERIOD_START here and no end
    period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    period_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    assistant_messages: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    user_messages: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    __tablename__ = 'user_stats'
    __pk_abbrev__ = USER_STATS_PK_ABBREV
    __read_domain__ = UserStatsRead
    __create_domain__ = UserStatsCreate

    __table_args__ = (
        Index('idx_user_stats_bucket', 'user_id', 'period', 'application', 'period_start', unique=True),
        Index('idx_user_stats_period_start', 'period', 'period_start'),
    )


# Conflict target of the aggregate upsert
USER_STATS_BUCKET_COLUMNS = ('user_id', 'period', 'application', 'period_start')
