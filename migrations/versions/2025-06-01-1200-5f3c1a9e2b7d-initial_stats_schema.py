"""initial stats schema

Revision ID: 5f3c1a9e2b7d
Revises:
Create Date: 2025-06-01 12:00:00.000000

"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '5f3c1a9e2b7d'
down_revision = None
branch_labels = None
depends_on = None

# Counters shared by message_stats and user_stats
MEASURE_COLUMNS = (
    'input_tokens',
    'output_tokens',
    'cache_creation_tokens',
    'cache_read_tokens',
    'cached_tokens',
    'reasoning_tokens',
    'tool_calls',
    'terminal_commands',
    'file_searches',
    'file_content_searches',
    'files_read',
    'files_added',
    'files_edited',
    'files_deleted',
    'lines_read',
    'lines_added',
    'lines_edited',
    'lines_deleted',
    'bytes_read',
    'bytes_added',
    'bytes_edited',
    'bytes_deleted',
    'code_lines',
    'docs_lines',
    'data_lines',
    'media_lines',
    'config_lines',
    'other_lines',
    'todos_created',
    'todos_completed',
    'todos_in_progress',
    'todo_writes',
    'todo_reads',
)


def _measure_columns() -> list[sa.Column]:
    return [sa.Column(name, sa.BigInteger(), nullable=False) for name in MEASURE_COLUMNS]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('username', sa.String(length=200), nullable=False),
        sa.Column('display_name', sa.String(length=200), nullable=True),
        sa.Column('id', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.String(length=50), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('opt_out_public', sa.Boolean(), nullable=False),
        sa.Column('id', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )
    op.create_table(
        'api_tokens',
        sa.Column('user_id', sa.String(length=50), nullable=False),
        sa.Column('token', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('id', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
    )
    op.create_index(op.f('ix_api_tokens_user_id'), 'api_tokens', ['user_id'], unique=False)
    op.create_table(
        'message_stats',
        *_measure_columns(),
        sa.Column('user_id', sa.String(length=50), nullable=False),
        sa.Column('global_hash', sa.String(length=255), nullable=False),
        sa.Column('application', sa.String(length=50), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('project_hash', sa.String(length=255), nullable=False),
        sa.Column('conversation_hash', sa.String(length=255), nullable=False),
        sa.Column('local_hash', sa.String(length=255), nullable=True),
        sa.Column('uuid', sa.String(length=255), nullable=True),
        sa.Column('session_name', sa.String(length=255), nullable=True),
        sa.Column('model', sa.String(length=255), nullable=True),
        sa.Column('file_types', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('cost', sa.Float(), nullable=True),
        sa.Column('id', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('global_hash'),
    )
    op.create_index(
        'idx_message_stats_user_application_date', 'message_stats', ['user_id', 'application', 'date'], unique=False
    )
    op.create_index('idx_message_stats_user_date', 'message_stats', ['user_id', 'date'], unique=False)
    op.create_table(
        'user_stats',
        *_measure_columns(),
        sa.Column('user_id', sa.String(length=50), nullable=False),
        sa.Column('period', sa.String(length=20), nullable=False),
        sa.Column('application', sa.String(length=50), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=True),
        sa.Column('cost', sa.Float(), nullable=False),
        sa.Column('assistant_messages', sa.BigInteger(), nullable=False),
        sa.Column('user_messages', sa.BigInteger(), nullable=False),
        sa.Column('id', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_user_stats_bucket', 'user_stats', ['user_id', 'period', 'application', 'period_start'], unique=True
    )
    op.create_index('idx_user_stats_period_start', 'user_stats', ['period', 'period_start'], unique=False)
    # ### end Alembic commands ###


def downgrade() -> None:
    op.drop_index('idx_user_stats_period_start', table_name='user_stats')
    op.drop_index('idx_user_stats_bucket', table_name='user_stats')
    op.drop_table('user_stats')
    op.drop_index('idx_message_stats_user_date', table_name='message_stats')
    op.drop_index('idx_message_stats_user_application_date', table_name='message_stats')
    op.drop_table('message_stats')
    op.drop_index(op.f('ix_api_tokens_user_id'), table_name='api_tokens')
    op.drop_table('api_tokens')
    op.drop_table('user_preferences')
    op.drop_table('users')
