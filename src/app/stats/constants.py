from datetime import datetime

from src.common.enum import BaseEnum

MESSAGE_STATS_PK_ABBREV = 'mst'
USER_STATS_PK_ABBREV = 'ust'


class Period(BaseEnum):
    HOURLY = 'hourly'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'
    ALL_TIME = 'all_time'


class Application(BaseEnum):
    CLAUDE_CODE = 'claude_code'
    CODEX_CLI = 'codex_cli'
    GEMINI_CLI = 'gemini_cli'
    QWEN_CODE = 'qwen_code'
    CLINE = 'cline'
    ROO_CODE = 'roo_code'
    KILO_CODE = 'kilo_code'
    COPILOT = 'copilot'
    OPEN_CODE = 'open_code'
    PI_AGENT = 'pi_agent'
    PIEBALD = 'piebald'


class MessageRole(BaseEnum):
    ASSISTANT = 'assistant'
    USER = 'user'


class DeleteType(BaseEnum):
    DATA = 'data'
    ACCOUNT = 'account'


class SortOrder(BaseEnum):
    ASC = 'asc'
    DESC = 'desc'


# Every summable integer counter carried by a message, in upload order.
# Raw rows, aggregates, the ingest coercion and both recalculation paths
# all iterate this one table.
INTEGER_MEASURES: tuple[str, ...] = (
    # tokens
    'input_tokens',
    'output_tokens',
    'cache_creation_tokens',
    'cache_read_tokens',
    'cached_tokens',
    'reasoning_tokens',
    # tools
    'tool_calls',
    'terminal_commands',
    'file_searches',
    'file_content_searches',
    # files
    'files_read',
    'files_added',
    'files_edited',
    'files_deleted',
    # lines
    'lines_read',
    'lines_added',
    'lines_edited',
    'lines_deleted',
    # bytes
    'bytes_read',
    'bytes_added',
    'bytes_edited',
    'bytes_deleted',
    # line categories
    'code_lines',
    'docs_lines',
    'data_lines',
    'media_lines',
    'config_lines',
    'other_lines',
    # todos
    'todos_created',
    'todos_completed',
    'todos_in_progress',
    'todo_writes',
    'todo_reads',
)
COST_MEASURE = 'cost'
ROLE_COUNTS: tuple[str, ...] = ('assistant_messages', 'user_messages')
# Everything an aggregate bucket sums
AGGREGATE_MEASURES: tuple[str, ...] = INTEGER_MEASURES + (COST_MEASURE,) + ROLE_COUNTS
# Columns fed into the per model export
EXPORT_MEASURES: tuple[str, ...] = ('input_tokens', 'cache_creation_tokens', 'cache_read_tokens', 'output_tokens')

# All time buckets are unbounded, the key still needs a concrete value
# for the unique constraint since NULLs never conflict
ALL_TIME_PERIOD_START = datetime(1970, 1, 1)

UNKNOWN_MODEL = 'unknown'
